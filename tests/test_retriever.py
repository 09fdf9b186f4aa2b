from datetime import datetime

import pytest

from indexer.embeddings import EmbeddingError
from indexer.models import Chunk
from retrieval import scoring
from retrieval.query import build_constraints, parse_date_hint
from retrieval.retriever import CONTEXT_SEPARATOR, HybridRetriever, ScoredCandidate
from conftest import FakeEmbedder

NOW = datetime(2025, 1, 1, 12, 0, 0)
JOB_URL = "https://site.test/vacatures/amsterdam-developer"
NEWS_URL = "https://site.test/nieuws/zomerfeest"


@pytest.fixture
def add(store, embedder):
    def _add(url, category, title, *contents, published_at=None):
        chunks = [
            Chunk(url=url, category=category, title=title, chunk_index=i, content=content,
                  content_hash="h-" + url, embedding=embedder.embed(content),
                  published_at=published_at)
            for i, content in enumerate(contents)
        ]
        store.insert_chunks(chunks)
    return _add


@pytest.fixture
def retriever(store, embedder, settings):
    return HybridRetriever(store, embedder, settings, now=lambda: NOW)


@pytest.fixture
def site_content(add):
    add(JOB_URL, "vacatures", "Developer Amsterdam",
        "Wij zoeken een developer in Amsterdam. Salaris vanaf €3200 per maand.")
    add(NEWS_URL, "nieuws", "Zomerfeest",
        "Het zomerfeest in Rotterdam was gezellig met muziek en eten.")


def test_dutch_vacancy_question(retriever, site_content):
    result = retriever.retrieve("Wat zijn de vacatures in Amsterdam vanaf €3000?")

    assert [s.url for s in result.sources] == [JOB_URL]
    assert result.context.startswith(f"### Developer Amsterdam ({JOB_URL})\n")
    assert "€3200" in result.context
    assert result.sources[0].score == round(result.sources[0].score, 4)


def test_no_candidates_skips_query_embedding(retriever, embedder, site_content):
    embedder.calls.clear()
    result = retriever.retrieve("xylofoon")
    assert result.empty
    assert result.sources == []
    assert embedder.calls == []


def test_blank_question(retriever):
    assert retriever.retrieve("   ").empty


def test_cosine_floor(store, embedder, settings, site_content):
    relaxed = HybridRetriever(store, embedder, settings, now=lambda: NOW)
    assert [s.url for s in relaxed.retrieve("zomerfeest rotterdam").sources] == [NEWS_URL]

    strict = HybridRetriever(store, embedder, settings.model_copy(update={"cosine_min": 0.99}),
                             now=lambda: NOW)
    assert strict.retrieve("zomerfeest rotterdam").empty


def test_category_match_bypasses_cosine_floor(store, embedder, settings, site_content):
    strict = HybridRetriever(store, embedder, settings.model_copy(update={"cosine_min": 0.99}),
                             now=lambda: NOW)
    result = strict.retrieve("Welke vacatures zijn er in Amsterdam?")
    assert [s.url for s in result.sources] == [JOB_URL]


def test_anti_terms_exclude_candidates(retriever, site_content):
    assert retriever.retrieve("vacatures Amsterdam zonder developer").empty


def test_hint_boost_breaks_ties(retriever, add):
    body = "Vacature in Utrecht voor een projectleider."
    add("https://site.test/vacatures/a", "vacatures", "Projectleider", body)
    add("https://site.test/vacatures/b", "vacatures", "Projectleider", body)

    plain = retriever.retrieve("vacatures Utrecht projectleider")
    hinted = retriever.retrieve("vacatures Utrecht projectleider",
                                hints={"url": "http://site.test/vacatures/b/"})

    assert {s.url for s in plain.sources} == {"https://site.test/vacatures/a", "https://site.test/vacatures/b"}
    assert hinted.sources[0].url == "https://site.test/vacatures/b"
    assert hinted.sources[0].score > hinted.sources[1].score


def test_recent_content_ranks_higher(retriever, add):
    body = "Nieuws over de open dag in Leiden."
    add("https://site.test/nieuws/oud", "nieuws", "Open dag", body, published_at="2022-01-01 00:00:00")
    add("https://site.test/nieuws/nieuw", "nieuws", "Open dag", body, published_at="2024-12-20 00:00:00")

    result = retriever.retrieve("nieuws open dag Leiden")
    assert [s.url for s in result.sources][0] == "https://site.test/nieuws/nieuw"


def test_grouping_and_top_k(retriever, add):
    add("https://site.test/cases/brug", "cases", "Brug",
        "De brug in Delft is af.", "De brug in Delft is breed.", "De brug in Delft is mooi.")
    add("https://site.test/cases/tunnel", "cases", "Tunnel", "De tunnel in Delft is af.")

    result = retriever.retrieve("case brug tunnel Delft")
    assert len(result.sources) == 2
    assert result.context.count("### Brug (https://site.test/cases/brug)") == 2
    assert len(result.context.split(CONTEXT_SEPARATOR)) == 3

    limited = retriever.retrieve("case brug tunnel Delft", top_k=1)
    assert len(limited.sources) == 1


def test_query_embedding_failure_propagates(store, settings, site_content):
    class Broken(FakeEmbedder):
        def embed(self, text):
            raise EmbeddingError("down")

    retriever = HybridRetriever(store, Broken(), settings, now=lambda: NOW)
    with pytest.raises(EmbeddingError):
        retriever.retrieve("Wat zijn de vacatures in Amsterdam?")


def test_hub_page_bypasses_cosine_floor(store, embedder, settings):
    hub_url = "https://site.test/vacatures/"
    store.insert_chunks([
        Chunk(url=hub_url, category="page", title="Vacatures", chunk_index=0,
              content="Bekijk al onze vacatures op deze pagina.", content_hash="h-hub"),
        Chunk(url="https://site.test/over-ons", category="page", title="Over ons", chunk_index=0,
              content="Over ons team, onze missie en onze vacatures.", content_hash="h-over",
              embedding=embedder.embed("Over ons team, onze missie en onze vacatures.")),
    ])
    strict = HybridRetriever(store, embedder, settings.model_copy(update={"cosine_min": 0.99}),
                             now=lambda: NOW)

    result = strict.retrieve("vacatures")

    assert [s.url for s in result.sources] == [hub_url]


def test_category_match_never_lowers_score(retriever, store, site_content):
    candidate = store.search("developer amsterdam")[0]
    question = "developer amsterdam"
    args = (retriever.embedder.embed(question), build_constraints(question), question,
            parse_date_hint(question), {}, NOW)

    plain = retriever.score(ScoredCandidate(candidate), *args)
    matched = retriever.score(ScoredCandidate(candidate, category_match=True), *args)

    assert matched.final > plain.final
    assert matched.final - plain.final == pytest.approx(scoring.CATEGORY_MATCH_BOOST)


def test_mixed_case_synonym_matches_category(store, embedder, settings, site_content):
    strict = HybridRetriever(
        store, embedder,
        settings.model_copy(update={"cosine_min": 0.99, "category_synonyms": {"baan": "Vacatures"}}),
        now=lambda: NOW,
    )
    result = strict.retrieve("Is er een baan in Amsterdam?")
    assert [s.url for s in result.sources] == [JOB_URL]
