"""
Tests for the Postgres storage backend

需要可寫入的測試資料庫：TEST_DATABASE_URL=postgresql://... pytest tests/test_pg_store.py
"""

import os
import uuid
from datetime import date

import pytest

from news_ninja.models import ArticleRecord, Topic

TEST_DSN = os.environ.get("TEST_DATABASE_URL")

requires_db = pytest.mark.skipif(not TEST_DSN, reason="TEST_DATABASE_URL not set")


@pytest.fixture
def store():
    from news_ninja.storage.pg_store import PostgresStore

    pg = PostgresStore(TEST_DSN, max_connections=2)
    yield pg
    pg.close()


def create_test_record(country_code: str, keyword: str) -> ArticleRecord:
    return ArticleRecord(
        title="PG Title",
        summary="",
        content="PG content.",
        country_code=country_code,
        country_name="Testland",
        language="en",
        trend_keyword=keyword,
        trend_rank=1,
        search_queries=[keyword],
        sources=["Mock Trends", "AI Generated"],
    )


@requires_db
def test_save_article_and_views(store):
    # 隨機國家代碼避免與既有資料衝突
    code = uuid.uuid4().hex[:6].upper()
    article_id = store.save_article(create_test_record(code, "pg keyword"))

    article = store.get_by_id(article_id)
    assert article.title == "PG Title"
    assert article.views == 0
    assert article.sources == ["Mock Trends", "AI Generated"]

    assert store.increment_views(article_id) == 1
    assert store.record_view(article_id, "Italy", "IT") == 2
    assert [a.id for a in store.get_recent(limit=5, country_code=code)] == [article_id]


@requires_db
def test_trend_snapshot_upsert(store):
    code = uuid.uuid4().hex[:6].upper()
    day = date(2026, 2, 13)

    def topic(rank):
        return Topic(keyword="pg trend", source_country=code, rank=rank, popularity_score=10, growth_rate=5)

    store.save_trend_snapshot(code, "Testland", [topic(1)], day)
    store.save_trend_snapshot(code, "Testland", [topic(4)], day)

    rows = store.get_trend_snapshot(code, day)
    assert len(rows) == 1
    assert rows[0].rank == 4


@requires_db
def test_ping(store):
    assert store.ping()


def test_ping_after_close():
    """close() 之後 ping 回傳 False，不拋例外"""
    from news_ninja.storage.pg_store import PostgresStore

    pg = PostgresStore.__new__(PostgresStore)
    pg.pool = None
    pg.close()

    assert pg.ping() is False
