from __future__ import annotations

import threading

from conftest import FIXED_NOW, FakeEmbedder, make_article
from core import Keyword, KeywordStatus
from storage.news_index import NewsIndexManager, is_index_eligible
from storage.repositories import InMemoryArticleRepository, InMemoryKeywordRepository
from storage.vector_store import QdrantVectorStore


def _keywords(repo, **statuses):
    for name, status in statuses.items():
        repo.save(Keyword(name=name, status=status))


def _indexed_article_ids(index: NewsIndexManager):
    return {hit.metadata["article_id"] for hit in index.search("gpu supply", top_k=100)}


def test_eligibility_predicate() -> None:
    fresh = make_article(score=40, age_days=6)
    assert is_index_eligible(fresh, {"ai"}, FIXED_NOW)
    assert is_index_eligible(fresh, None, FIXED_NOW)
    assert not is_index_eligible(fresh, {"chips"}, FIXED_NOW)
    assert not is_index_eligible(make_article(score=39), None, FIXED_NOW)
    assert not is_index_eligible(make_article(age_days=7), None, FIXED_NOW)
    assert not is_index_eligible(make_article(age_days=8), None, FIXED_NOW)

    inactive = make_article()
    inactive.is_active = False
    assert not is_index_eligible(inactive, None, FIXED_NOW)


def test_rebuild_indexes_only_eligible_articles(keywords, articles, index) -> None:
    _keywords(keywords, ai=KeywordStatus.ACTIVE, chips=KeywordStatus.PAUSED)
    saved = articles.save_all(
        [
            make_article(keyword="ai", score=40, age_days=6, title="eligible"),
            make_article(keyword="chips", score=90, age_days=1, title="paused keyword"),
            make_article(keyword="ai", score=80, age_days=8, title="too old"),
            make_article(keyword="ai", score=39, age_days=1, title="low grade"),
        ]
    )

    assert index.rebuild()

    assert _indexed_article_ids(index) == {saved[0].id}
    assert not index.is_dirty


def test_rebuild_with_no_active_keywords_empties_index(keywords, articles, index) -> None:
    _keywords(keywords, ai=KeywordStatus.ACTIVE)
    article = articles.save_all([make_article()])[0]
    index.add_or_update(article)
    assert index.count() > 0

    keywords.save(keywords.find_by_name("ai").model_copy(update={"status": KeywordStatus.PAUSED}))

    assert index.rebuild()
    assert index.count() == 0


def test_single_add_never_removes_existing_entries(keywords, articles, index) -> None:
    _keywords(keywords, ai=KeywordStatus.ACTIVE)
    first, low = articles.save_all([make_article(title="first one"), make_article(score=10, title="low")])

    assert index.add_or_update(first, ["ai"])
    before = index.count()
    assert not index.add_or_update(low, ["ai"])

    assert index.count() == before
    assert _indexed_article_ids(index) == {first.id}


def test_readding_an_article_replaces_its_chunks(articles, index) -> None:
    article = articles.save_all([make_article(body="alpha " * 100)])[0]
    index.add_or_update(article)
    first_count = index.count()

    shorter = article.model_copy(update={"body": "short replacement body for the gpu article"})
    index.add_or_update(shorter)

    assert first_count > 1
    assert index.count() == 1


def test_unsaved_article_is_skipped(index) -> None:
    assert not index.add_or_update(make_article())
    assert index.count() == 0


def test_chunks_carry_title_prefix_and_metadata(articles, index) -> None:
    article = articles.save_all([make_article(title="GPU export rules", body="word " * 120)])[0]

    chunks = index.build_chunks(article)

    assert len(chunks) > 1
    for position, chunk in enumerate(chunks):
        assert chunk.id == f"{article.id}_{position}"
        assert chunk.content.startswith("GPU export rules\n")
        assert chunk.metadata["article_id"] == article.id
        assert chunk.metadata["keyword"] == "ai"
        assert chunk.metadata["score"] == article.final_score
        assert chunk.metadata["chunk_index"] == position


def test_empty_body_falls_back_to_title_summary_reason(articles, index) -> None:
    article = articles.save_all([make_article(title="Headline", body="  ")])[0]

    chunks = index.build_chunks(article)

    assert len(chunks) == 1
    assert chunks[0].id == f"{article.id}_0"
    assert chunks[0].content == "Headline\nshort summary\nimportant"


def test_fallback_chunk_is_capped(articles, embedder, index_settings, keywords) -> None:
    settings = index_settings.model_copy(update={"fallback_max_chars": 20})
    manager = NewsIndexManager(articles, keywords, embedder, settings=settings, clock=lambda: FIXED_NOW)
    article = articles.save_all([make_article(title="T" * 50, body="")])[0]

    assert manager.build_chunks(article)[0].content == "T" * 20
    manager.shutdown()


def test_dirty_flag_and_flush_write_snapshot(tmp_path, articles, keywords, embedder, index_settings) -> None:
    path = tmp_path / "index" / "qdrant"
    manager = NewsIndexManager(articles, keywords, embedder, settings=index_settings, path=str(path), clock=lambda: FIXED_NOW)
    article = articles.save_all([make_article()])[0]

    manager.add_or_update(article)
    assert manager.is_dirty
    assert not path.exists()

    assert manager.flush_if_dirty()
    assert not manager.is_dirty
    assert path.exists()
    assert not manager.flush_if_dirty()
    manager.shutdown()

    snapshot = QdrantVectorStore(embedder, persist_directory=str(path))
    assert f"{article.id}_0" in {point.id for point in snapshot.points()}
    snapshot.close()


def test_initialize_restores_snapshot_then_rebuilds(tmp_path, articles, keywords, index_settings) -> None:
    _keywords(keywords, ai=KeywordStatus.ACTIVE)
    path = str(tmp_path / "qdrant")
    article = articles.save_all([make_article()])[0]

    writer = NewsIndexManager(articles, keywords, FakeEmbedder(), settings=index_settings, path=path, clock=lambda: FIXED_NOW)
    writer.add_or_update(article)
    writer.shutdown()

    reader = NewsIndexManager(articles, keywords, FakeEmbedder(), settings=index_settings, path=path, clock=lambda: FIXED_NOW)
    reader.initialize()

    assert reader.count() == writer.count()
    assert reader.search("gpu supply")[0].metadata["article_id"] == article.id
    reader.shutdown()


def test_failed_rebuild_keeps_previous_index(keywords, articles, index, monkeypatch) -> None:
    _keywords(keywords, ai=KeywordStatus.ACTIVE)
    article = articles.save_all([make_article()])[0]
    assert index.rebuild()
    before = index.count()

    def broken(*args, **kwargs):
        raise RuntimeError("article store offline")

    monkeypatch.setattr(articles, "find_for_index", broken)

    assert not index.rebuild()
    assert index.count() == before
    assert _indexed_article_ids(index) == {article.id}


def test_search_filters_and_thresholds(keywords, articles, index) -> None:
    _keywords(keywords, ai=KeywordStatus.ACTIVE, chips=KeywordStatus.ACTIVE)
    articles.save_all(
        [
            make_article(keyword="ai", title="gpu supply ai"),
            make_article(keyword="chips", title="gpu supply chips"),
        ]
    )
    index.rebuild()

    hits = index.search("gpu supply", top_k=10, filter={"keyword": "chips"})
    assert hits
    assert {hit.metadata["keyword"] for hit in hits} == {"chips"}
    assert index.search("gpu supply", threshold=1.01) == []
    assert index.search("   ") == []


def test_rebuild_async_after_shutdown_is_ignored(articles, keywords, embedder, index_settings) -> None:
    manager = NewsIndexManager(articles, keywords, embedder, settings=index_settings)
    manager.shutdown()
    assert manager.rebuild_async() is None


class GatedEmbedder(FakeEmbedder):
    """Blocks the rebuild thread inside its first embedding call until released."""

    def __init__(self) -> None:
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def embed(self, texts):
        if threading.current_thread().name == "gated-rebuild" and not self.entered.is_set():
            self.entered.set()
            self.release.wait(5)
        return super().embed(texts)


def test_article_indexed_during_rebuild_survives_the_swap(keywords, articles, index_settings) -> None:
    _keywords(keywords, ai=KeywordStatus.ACTIVE)
    first = articles.save_all([make_article(title="first gpu story")])[0]
    embedder = GatedEmbedder()
    manager = NewsIndexManager(articles, keywords, embedder, settings=index_settings, clock=lambda: FIXED_NOW)

    worker = threading.Thread(target=manager.rebuild, name="gated-rebuild")
    worker.start()
    assert embedder.entered.wait(5)

    # saved after the rebuild read the article store
    late = articles.save_all([make_article(title="late gpu story")])[0]
    assert manager.add_or_update(late, ["ai"])

    embedder.release.set()
    worker.join(5)

    assert not worker.is_alive()
    assert _indexed_article_ids(manager) == {first.id, late.id}
    manager.shutdown()


def test_replay_skips_keywords_deactivated_before_the_rebuild(keywords, articles, index_settings) -> None:
    _keywords(keywords, ai=KeywordStatus.ACTIVE, chips=KeywordStatus.PAUSED)
    first = articles.save_all([make_article(title="first gpu story")])[0]
    embedder = GatedEmbedder()
    manager = NewsIndexManager(articles, keywords, embedder, settings=index_settings, clock=lambda: FIXED_NOW)

    worker = threading.Thread(target=manager.rebuild, name="gated-rebuild")
    worker.start()
    assert embedder.entered.wait(5)
    paused = articles.save_all([make_article(keyword="chips", title="paused gpu story")])[0]
    manager.add_or_update(paused)
    embedder.release.set()
    worker.join(5)

    assert _indexed_article_ids(manager) == {first.id}
    manager.shutdown()


def test_load_snapshot_serves_persisted_chunks_without_rewriting(tmp_path, articles, keywords, index_settings) -> None:
    _keywords(keywords, ai=KeywordStatus.ACTIVE)
    path = str(tmp_path / "qdrant")
    article = articles.save_all([make_article()])[0]

    writer = NewsIndexManager(articles, keywords, FakeEmbedder(), settings=index_settings, path=path, clock=lambda: FIXED_NOW)
    writer.add_or_update(article)
    writer.shutdown()

    # a fresh process: empty repositories, nothing ACTIVE
    reader = NewsIndexManager(
        InMemoryArticleRepository(),
        InMemoryKeywordRepository(),
        FakeEmbedder(),
        settings=index_settings,
        path=path,
        clock=lambda: FIXED_NOW,
    )
    assert reader.load_snapshot() == writer.count()
    assert reader.search("gpu supply")[0].metadata["article_id"] == article.id
    assert not reader.is_dirty
    reader.shutdown()

    snapshot = QdrantVectorStore(FakeEmbedder(), persist_directory=path)
    assert snapshot.count() == writer.count()
    snapshot.close()


def test_load_snapshot_without_a_path_is_a_no_op(index) -> None:
    assert index.load_snapshot() == 0
    assert index.count() == 0
