import numpy as np
import pytest

from config.database import DatabaseConfig, connect
from indexer.models import Chunk, decode_embedding, encode_embedding
from indexer.sqlite_adapter import ChunkStore, fts_query, query_tokens


def _chunk(url, content, category="nieuws", index=0, title="Titel"):
    return Chunk(url=url, category=category, title=title, chunk_index=index,
                 content=content, content_hash="hash-" + url,
                 embedding=np.array([1.0, 0.0], dtype=np.float32))


@pytest.fixture
def filled(store):
    store.insert_chunks([
        _chunk("https://site.test/nieuws/a", "De open dag in Leiden was druk."),
        _chunk("https://site.test/nieuws/a", "Er waren veel bezoekers.", index=1),
        _chunk("https://site.test/cases/b", "Een brug in Delft.", category="cases"),
    ])
    return store


def test_query_helpers():
    assert query_tokens("De open-dag, de OPEN dag!") == ["de", "open", "dag"]
    assert fts_query(["open", 'da"g']) == '"open" OR "da""g"'


def test_embedding_blob_round_trip():
    vector = np.array([0.5, -0.25, 1.0], dtype=np.float32)
    assert np.array_equal(decode_embedding(encode_embedding(vector)), vector)
    assert decode_embedding(b"") is None
    assert decode_embedding(b"abc") is None


def test_fts_search(filled):
    assert filled.db.fts_enabled
    results = filled.search("open dag Leiden")
    assert [c.chunk.url for c in results] == ["https://site.test/nieuws/a"]
    assert results[0].lexical_score > 0
    assert results[0].chunk.embedding is not None


def test_category_search(filled):
    assert [c.chunk.url for c in filled.search_by_category("cases", "brug Delft")] == ["https://site.test/cases/b"]
    assert filled.search_by_category("cases", "open dag") == []
    # Too short for a text query: newest chunks of the category.
    assert len(filled.search_by_category("nieuws", "ab")) == 2


def test_substring_fallback_without_fts(tmp_path):
    db = connect(DatabaseConfig(sqlite_path=str(tmp_path / "plain.db"), enable_fts=False))
    store = ChunkStore(db)
    store.insert_chunks([_chunk("https://site.test/x", "Korting van 50% op alles")])

    results = store.search("50% korting")
    assert len(results) == 1
    assert results[0].lexical_score == 0.0
    assert store.search("100_procent") == []
    db.close()


def test_document_state_and_existing_urls(filled):
    assert filled.get_document_state("https://site.test/nieuws/a") == ("hash-https://site.test/nieuws/a", "nieuws")
    assert filled.get_document_state("https://site.test/none") is None
    assert filled.existing_urls(["https://site.test/cases/b", "https://site.test/none"]) == {"https://site.test/cases/b"}


def test_delete_by_variant_and_path(filled):
    assert filled.delete_document(["http://site.test/nieuws/a/"]) == 2
    assert filled.delete_document([], paths=["/Cases/B/"]) == 1
    assert filled.stats()["chunk_count"] == 0
    assert filled.search("Leiden") == []


def test_replace_document(filled):
    filled.replace_document("https://site.test/nieuws/a",
                            [_chunk("https://site.test/nieuws/a", "Nieuwe tekst.")])
    chunks = filled.get_chunks("https://site.test/nieuws/a")
    assert [c.content for c in chunks] == ["Nieuwe tekst."]


def test_stats(filled):
    stats = filled.stats()
    assert stats["document_count"] == 2
    assert stats["chunk_count"] == 3
    assert stats["embedded_chunk_count"] == 3
    assert stats["last_updated"] is not None
