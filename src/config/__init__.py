"""Configuration package.

``settings`` is the process-wide :class:`Settings` instance used by
``src.main``; tests build their own ``Settings(...)`` with explicit values.
"""

from src.config.loader import load_config
from src.config.settings import Settings

settings = Settings()

__all__ = ["Settings", "load_config", "settings"]
