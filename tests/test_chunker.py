import pytest
import sys
import os

# Add the parent directory to the path so we can import from indexer
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from indexer.chunker import chunk_text, split_sentences, MIN_CHUNK_CHARS


def _sentences(count, size=90):
    """Build `count` sentences of exactly `size` characters each."""
    return [("Zin %03d " % i).ljust(size - 1, "x") + "." for i in range(count)]


def test_chunker_respects_size():
    """Chunks made of normal sentences never exceed the budget."""
    text = " ".join(_sentences(40))
    chunks = chunk_text(text, max_chars=500)
    assert len(chunks) > 1
    assert all(len(c) <= 500 for c in chunks)


def test_chunker_with_small_text():
    """Text below the budget is returned as a single chunk."""
    chunks = chunk_text("Short text.", max_chars=1000)
    assert chunks == ["Short text."]


def test_chunker_empty_text():
    assert chunk_text("", max_chars=1000) == []
    assert chunk_text("   \n\t ", max_chars=1000) == []


def test_chunker_joins_back_to_collapsed_input():
    text = "Eerste zin.  Tweede\nzin!\n\nDerde zin?   " + " ".join(_sentences(30))
    chunks = chunk_text(text, max_chars=400)
    collapsed = " ".join(text.split())
    assert " ".join(chunks) == collapsed


def test_chunker_floor_applies():
    """A tiny budget is clamped to the minimum chunk size."""
    text = " ".join(_sentences(10, size=50))
    chunks = chunk_text(text, max_chars=10)
    assert len(chunks) > 1
    assert all(len(c) <= MIN_CHUNK_CHARS for c in chunks)
    assert len(chunks[0]) > 300


def test_chunker_oversized_sentence_kept_whole():
    long_sentence = "woord " * 200 + "einde."
    text = "Korte zin. " + long_sentence + " Nog een zin."
    chunks = chunk_text(text, max_chars=400)
    assert chunks[0] == "Korte zin."
    assert chunks[1] == " ".join(long_sentence.split())
    assert chunks[2] == "Nog een zin."


def test_split_sentences():
    assert split_sentences("Hallo. Hoe gaat het? Goed!") == ["Hallo.", "Hoe gaat het?", "Goed!"]
    assert split_sentences("geen leesteken hier") == ["geen leesteken hier"]


@pytest.mark.parametrize("budget", [400, 800, 1200])
def test_chunker_flushes_before_overflow(budget):
    sentences = _sentences(50)
    chunks = chunk_text(" ".join(sentences), max_chars=budget)
    for first, second in zip(chunks, chunks[1:]):
        next_sentence = second.split(". ")[0] + ("." if not second.split(". ")[0].endswith(".") else "")
        assert len(first) + 1 + len(next_sentence) > budget
