"""Unit tests for the TextChunker and token estimation."""

from __future__ import annotations

import pytest

from src.services.ingestion.chunker import TextChunker, estimate_tokens
from tests.conftest import long_text


# ======================================================================
# estimate_tokens
# ======================================================================


class TestEstimateTokens:
    def test_rounds_up(self) -> None:
        assert estimate_tokens("abcde") == 2

    def test_exact_multiple(self) -> None:
        assert estimate_tokens("abcd" * 10) == 10

    def test_empty(self) -> None:
        assert estimate_tokens("") == 0


# ======================================================================
# Degenerate and small inputs
# ======================================================================


class TestSmallInputs:
    def test_empty_text_returns_empty_list(self) -> None:
        assert TextChunker().chunk("") == []

    def test_whitespace_only_returns_empty_list(self) -> None:
        assert TextChunker().chunk(" \n\t ") == []

    def test_short_text_single_chunk(self) -> None:
        chunks = TextChunker().chunk("  Hello world. This is short.  ")
        assert len(chunks) == 1
        assert chunks[0].chunk_index == 0
        assert chunks[0].content == "Hello world. This is short."
        assert chunks[0].token_count == estimate_tokens("Hello world. This is short.")

    def test_text_just_under_budget_is_one_chunk(self) -> None:
        text = "x" * (500 * 4 - 1)
        chunks = TextChunker(max_tokens=500).chunk(text)
        assert len(chunks) == 1
        assert chunks[0].content == text

    def test_invalid_budget_rejected(self) -> None:
        with pytest.raises(ValueError):
            TextChunker(max_tokens=0)
        with pytest.raises(ValueError):
            TextChunker(overlap_tokens=-1)


# ======================================================================
# Segmentation
# ======================================================================


class TestSegmentation:
    def test_indices_are_contiguous(self) -> None:
        chunks = TextChunker(max_tokens=50, overlap_tokens=5).chunk(long_text())
        assert len(chunks) > 1
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))

    def test_no_chunk_has_zero_tokens(self) -> None:
        chunks = TextChunker(max_tokens=50, overlap_tokens=5).chunk(long_text())
        assert all(c.token_count > 0 for c in chunks)
        assert all(c.content.strip() for c in chunks)

    def test_deterministic(self) -> None:
        chunker = TextChunker(max_tokens=50, overlap_tokens=5)
        first = chunker.chunk(long_text())
        second = chunker.chunk(long_text())
        assert first == second

    def test_chunks_respect_character_budget(self) -> None:
        chunks = TextChunker(max_tokens=50, overlap_tokens=10).chunk(long_text())
        assert all(len(c.content) <= 50 * 4 for c in chunks)

    def test_every_sentence_is_covered(self) -> None:
        text = long_text(40)
        chunks = TextChunker(max_tokens=40, overlap_tokens=0).chunk(text)
        joined = " ".join(c.content for c in chunks)
        for i in range(40):
            assert f"Sentence number {i} talks" in joined

    def test_without_overlap_chunks_reconstruct_text(self) -> None:
        text = long_text(30)
        chunks = TextChunker(max_tokens=40, overlap_tokens=0).chunk(text)
        assert " ".join(c.content for c in chunks) == text

    def test_sentences_are_not_cut(self) -> None:
        chunks = TextChunker(max_tokens=40, overlap_tokens=0).chunk(long_text(30))
        for chunk in chunks:
            assert chunk.content.startswith("Sentence number")
            assert chunk.content.endswith("detail.")

    def test_paragraph_breaks_split_units(self) -> None:
        text = ("alpha " * 60).strip() + "\n\n" + ("beta " * 60).strip()
        chunks = TextChunker(max_tokens=100, overlap_tokens=0).chunk(text)
        assert len(chunks) == 2
        assert chunks[0].content.startswith("alpha")
        assert chunks[1].content.startswith("beta")

    def test_later_chunks_open_with_previous_tail(self) -> None:
        chunks = TextChunker(max_tokens=50, overlap_tokens=10).chunk(long_text())
        for previous, current in zip(chunks, chunks[1:]):
            seed = current.content.split(" Sentence number")[0]
            assert previous.content.endswith(seed)


class TestOverlapSeed:
    def test_seed_starts_after_sentence_end_in_first_half(self) -> None:
        # The 20-char tail is "c dd. Eeee ffff ggg."; ". " sits at offset 4.
        text = "Aaaa bbbb cccc dd. Eeee ffff ggg. Final part here."
        chunks = TextChunker(max_tokens=10, overlap_tokens=5).chunk(text)

        assert [c.content for c in chunks] == [
            "Aaaa bbbb cccc dd. Eeee ffff ggg.",
            "Eeee ffff ggg. Final part here.",
        ]
        seed = chunks[1].content.removesuffix(" Final part here.")
        assert seed == "Eeee ffff ggg."
        assert chunks[0].content.endswith(seed)

    def test_raw_tail_when_sentence_end_in_second_half(self) -> None:
        # The 20-char tail is "bbb cccc dd. Yes ok."; ". " sits at offset 11.
        text = "Aaaa bbbb cccc dd. Yes ok. Final part here."
        chunks = TextChunker(max_tokens=10, overlap_tokens=5).chunk(text)

        assert [c.content for c in chunks] == [
            "Aaaa bbbb cccc dd. Yes ok.",
            "bbb cccc dd. Yes ok. Final part here.",
        ]
        seed = chunks[1].content.removesuffix(" Final part here.")
        assert seed == "bbb cccc dd. Yes ok."
        assert len(seed) == 20

    def test_no_seed_without_overlap(self) -> None:
        text = "Aaaa bbbb cccc dd. Eeee ffff ggg. Final part here."
        chunks = TextChunker(max_tokens=10, overlap_tokens=0).chunk(text)
        assert chunks[1].content == "Final part here."


# ======================================================================
# Long text without sentence punctuation
# ======================================================================


class TestUnpunctuatedText:
    @pytest.fixture()
    def text(self) -> str:
        words = [f"word{i % 97}" for i in range(600)]
        text = " ".join(words)
        while len(text) < 3000:
            text += " filler"
        return text[:3000].strip()

    def test_produces_multiple_bounded_chunks(self, text: str) -> None:
        chunks = TextChunker(max_tokens=500, overlap_tokens=50).chunk(text)
        assert len(chunks) > 1
        assert all(len(c.content) <= 2000 for c in chunks)

    def test_later_chunks_start_with_previous_tail(self, text: str) -> None:
        chunks = TextChunker(max_tokens=500, overlap_tokens=50).chunk(text)
        for previous, current in zip(chunks, chunks[1:]):
            prefix = current.content[:20]
            assert prefix
            assert prefix in previous.content[-200:]

    def test_single_huge_word_is_hard_cut(self) -> None:
        chunks = TextChunker(max_tokens=10, overlap_tokens=0).chunk("z" * 100)
        assert len(chunks) > 1
        assert "".join(c.content for c in chunks) == "z" * 100


# ======================================================================
# Page-aware variant
# ======================================================================


class TestChunkWithPages:
    def test_pages_spread_evenly(self) -> None:
        chunker = TextChunker(max_tokens=40, overlap_tokens=0)
        chunks = chunker.chunk_with_pages(long_text(40), page_count=2)
        n = len(chunks)
        assert n >= 2
        pages = [c.metadata.page for c in chunks]
        assert pages[0] == 1
        assert pages[-1] == 2
        assert pages == sorted(pages)
        assert pages == [(i * 2) // n + 1 for i in range(n)]

    def test_single_page_not_stamped(self) -> None:
        chunks = TextChunker(max_tokens=40).chunk_with_pages(long_text(20), page_count=1)
        assert all(c.metadata.page is None for c in chunks)

    def test_no_page_count(self) -> None:
        chunks = TextChunker(max_tokens=40).chunk_with_pages(long_text(20), page_count=None)
        assert all(c.metadata.page is None for c in chunks)

    def test_more_pages_than_chunks(self) -> None:
        chunks = TextChunker().chunk_with_pages("One short chunk.", page_count=10)
        assert len(chunks) == 1
        assert chunks[0].metadata.page == 1
