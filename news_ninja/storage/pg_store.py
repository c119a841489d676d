"""
Postgres storage backend with automatic schema initialization

使用 psycopg2 ThreadedConnectionPool（pipeline 與 REST API 共用同一個 pool）。
每個寫入都是單一語句並各自 commit：run 中途中斷時，已寫入的文章保持完整。
所有 SQL 皆參數化。
"""

from contextlib import contextmanager
from datetime import date
from typing import Any, Dict, List, Optional
import logging

import psycopg2
from psycopg2.extras import RealDictCursor, execute_values
from psycopg2.pool import ThreadedConnectionPool

from news_ninja.models import Article, ArticleRecord, Topic, TrendSnapshot

logger = logging.getLogger(__name__)


SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS articles (
    id SERIAL PRIMARY KEY,
    title TEXT NOT NULL,
    summary TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL,
    country_code VARCHAR(8) NOT NULL,
    country_name TEXT NOT NULL,
    language VARCHAR(8) NOT NULL,
    trend_keyword TEXT NOT NULL,
    trend_rank INT NOT NULL CHECK (trend_rank >= 1),
    search_queries TEXT[] NOT NULL DEFAULT '{}',
    sources TEXT[] NOT NULL DEFAULT '{}',
    views INT NOT NULL DEFAULT 0 CHECK (views >= 0),
    status VARCHAR(16) NOT NULL DEFAULT 'published',
    published_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS trends (
    id SERIAL PRIMARY KEY,
    country_code VARCHAR(8) NOT NULL,
    country_name TEXT NOT NULL,
    keyword TEXT NOT NULL,
    rank INT NOT NULL,
    visitors DOUBLE PRECISION NOT NULL DEFAULT 0,
    growth_rate DOUBLE PRECISION NOT NULL DEFAULT 0,
    analyzed_date DATE NOT NULL,
    UNIQUE (country_code, keyword, analyzed_date)
);

CREATE TABLE IF NOT EXISTS article_views (
    id SERIAL PRIMARY KEY,
    article_id INT NOT NULL REFERENCES articles(id) ON DELETE CASCADE,
    viewer_country TEXT NOT NULL DEFAULT 'Unknown',
    viewer_country_code VARCHAR(8) NOT NULL DEFAULT 'XX',
    viewed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_articles_country ON articles(country_code);
CREATE INDEX IF NOT EXISTS idx_articles_published_at ON articles(published_at DESC);
CREATE INDEX IF NOT EXISTS idx_article_views_article ON article_views(article_id);
"""

ARTICLE_COLUMNS = """
    id, title, summary, content, country_code, country_name, language,
    trend_keyword, trend_rank, search_queries, sources, views, status,
    published_at, created_at
"""


class PostgresStore:
    """Postgres 儲存後端（連線失敗直接拋出，不 fallback）"""

    def __init__(self, dsn: str, min_connections: int = 1, max_connections: int = 20,
                 auto_init_schema: bool = True):
        """
        初始化 PostgresStore

        Args:
            dsn: Postgres connection string
            min_connections: 連線池最小連線數
            max_connections: 連線池最大連線數
            auto_init_schema: 是否自動建立 schema
        """
        self.dsn = dsn
        self.pool: Optional[ThreadedConnectionPool] = None
        self._connect(min_connections, max_connections)

        if auto_init_schema:
            self.init_schema()

    def _connect(self, min_connections: int, max_connections: int):
        """建立連線池"""
        try:
            self.pool = ThreadedConnectionPool(min_connections, max_connections, self.dsn)
            logger.info("✓ Connected to Postgres")
        except psycopg2.Error as e:
            logger.error(f"✗ Failed to connect to Postgres: {e}")
            raise RuntimeError(f"Postgres connection failed (no fallback): {e}")

    @contextmanager
    def _cursor(self):
        """從 pool 取得連線，成功 commit、失敗 rollback"""
        conn = self.pool.getconn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.pool.putconn(conn)

    def init_schema(self):
        """初始化資料庫 schema（若表不存在則建立）"""
        try:
            with self._cursor() as cur:
                cur.execute(SCHEMA_DDL)
            logger.info("✓ Schema initialized successfully")
        except psycopg2.Error as e:
            logger.error(f"Failed to initialize schema: {e}")
            raise

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_article(self, record: ArticleRecord) -> int:
        """寫入一篇文章，回傳新 id"""
        sql = """
        INSERT INTO articles (
            title, summary, content, country_code, country_name,
            language, trend_keyword, trend_rank, search_queries, sources, status
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """

        try:
            with self._cursor() as cur:
                cur.execute(sql, (
                    record.title,
                    record.summary,
                    record.content,
                    record.country_code,
                    record.country_name,
                    record.language,
                    record.trend_keyword,
                    record.trend_rank,
                    list(record.search_queries),
                    list(record.sources),
                    record.status.value,
                ))
                article_id = cur.fetchone()["id"]
            logger.info(f"✓ Saved article {article_id}: {record.title[:50]}")
            return article_id
        except psycopg2.Error as e:
            logger.error(f"Failed to save article: {e}")
            raise

    def save_trend_snapshot(
        self,
        country_code: str,
        country_name: str,
        topics: List[Topic],
        analyzed_date: date
    ) -> int:
        """
        Upsert trend snapshot

        (country_code, keyword, analyzed_date) 衝突時更新 rank / visitors / growth_rate。

        Returns:
            寫入筆數
        """
        if not topics:
            return 0

        sql = """
        INSERT INTO trends (
            country_code, country_name, keyword, rank,
            visitors, growth_rate, analyzed_date
        ) VALUES %s
        ON CONFLICT (country_code, keyword, analyzed_date) DO UPDATE SET
            rank = EXCLUDED.rank,
            visitors = EXCLUDED.visitors,
            growth_rate = EXCLUDED.growth_rate
        """

        # 同一批內重複的 keyword 只保留最後一筆 (ON CONFLICT 不允許同批重複)
        latest: Dict[str, Topic] = {}
        for topic in topics:
            latest[topic.keyword] = topic

        values = [
            (country_code, country_name, t.keyword, t.rank, t.popularity_score, t.growth_rate, analyzed_date)
            for t in latest.values()
        ]

        try:
            with self._cursor() as cur:
                execute_values(cur, sql, values)
            logger.info(f"✓ Saved {len(values)} trends for {country_code} ({analyzed_date})")
            return len(values)
        except psycopg2.Error as e:
            logger.error(f"Failed to save trends: {e}")
            raise

    def increment_views(self, article_id: int) -> Optional[int]:
        """views + 1，回傳新值（文章不存在時回傳 None）"""
        with self._cursor() as cur:
            cur.execute(
                "UPDATE articles SET views = views + 1 WHERE id = %s RETURNING views",
                (article_id,)
            )
            row = cur.fetchone()
        return row["views"] if row else None

    def record_view(self, article_id: int, viewer_country: str = "Unknown",
                    viewer_country_code: str = "XX") -> Optional[int]:
        """寫入 ViewEvent 並 views + 1，回傳新值（文章不存在時回傳 None）"""
        with self._cursor() as cur:
            cur.execute(
                "UPDATE articles SET views = views + 1 WHERE id = %s RETURNING views",
                (article_id,)
            )
            row = cur.fetchone()
            if row is None:
                return None
            cur.execute(
                """
                INSERT INTO article_views (article_id, viewer_country, viewer_country_code, viewed_at)
                VALUES (%s, %s, %s, NOW())
                """,
                (article_id, viewer_country, viewer_country_code)
            )
        return row["views"]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _fetch_all(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        with self._cursor() as cur:
            cur.execute(sql, params)
            return [dict(row) for row in cur.fetchall()]

    def get_recent(self, limit: int = 20, country_code: Optional[str] = None) -> List[Article]:
        """最新的已發布文章"""
        sql = f"SELECT {ARTICLE_COLUMNS} FROM articles WHERE status = 'published'"
        params: List[Any] = []

        if country_code:
            sql += " AND country_code = %s"
            params.append(country_code)

        sql += " ORDER BY published_at DESC, id DESC LIMIT %s"
        params.append(limit)

        return [Article(**row) for row in self._fetch_all(sql, tuple(params))]

    def get_by_id(self, article_id: int) -> Optional[Article]:
        rows = self._fetch_all(f"SELECT {ARTICLE_COLUMNS} FROM articles WHERE id = %s", (article_id,))
        return Article(**rows[0]) if rows else None

    def get_trend_snapshot(self, country_code: str, analyzed_date: date) -> List[TrendSnapshot]:
        rows = self._fetch_all(
            """
            SELECT country_code, country_name, keyword, rank, visitors, growth_rate, analyzed_date
            FROM trends
            WHERE country_code = %s AND analyzed_date = %s
            ORDER BY rank
            """,
            (country_code, analyzed_date)
        )
        return [TrendSnapshot(**row) for row in rows]

    def country_stats(self) -> List[Dict[str, Any]]:
        """每個國家的文章數與總瀏覽數"""
        return self._fetch_all(
            """
            SELECT country_name, country_code,
                   COUNT(*) AS article_count,
                   COALESCE(SUM(views), 0) AS total_views
            FROM articles
            WHERE status = 'published'
            GROUP BY country_code, country_name
            ORDER BY article_count DESC, country_code
            """
        )

    def country_trends(self, country_code: str, limit: int = 10) -> List[Dict[str, Any]]:
        """某國文章依 trend keyword 彙整"""
        return self._fetch_all(
            """
            SELECT trend_keyword AS keyword,
                   COUNT(*) AS article_count,
                   AVG(trend_rank)::float AS avg_rank
            FROM articles
            WHERE country_code = %s AND status = 'published'
            GROUP BY trend_keyword
            ORDER BY article_count DESC, trend_keyword
            LIMIT %s
            """,
            (country_code, limit)
        )

    def top_articles(self, limit: int = 10) -> List[Dict[str, Any]]:
        return self._fetch_all(
            """
            SELECT id, title, country_name, country_code, views, trend_keyword
            FROM articles
            WHERE status = 'published'
            ORDER BY views DESC, id
            LIMIT %s
            """,
            (limit,)
        )

    def top_by_viewer_country(self, viewer_country_code: str, limit: int = 5) -> List[Dict[str, Any]]:
        return self._fetch_all(
            """
            SELECT a.id, a.title, a.country_name, a.views,
                   COUNT(av.id) AS country_views
            FROM articles a
            JOIN article_views av ON a.id = av.article_id
            WHERE av.viewer_country_code = %s AND a.status = 'published'
            GROUP BY a.id
            ORDER BY country_views DESC, a.id
            LIMIT %s
            """,
            (viewer_country_code, limit)
        )

    def global_trending(self, limit: int = 5) -> List[Dict[str, Any]]:
        return self._fetch_all(
            """
            SELECT trend_keyword,
                   COUNT(DISTINCT id) AS article_count,
                   COALESCE(SUM(views), 0) AS total_views
            FROM articles
            WHERE status = 'published'
            GROUP BY trend_keyword
            ORDER BY total_views DESC, trend_keyword
            LIMIT %s
            """,
            (limit,)
        )

    def trending_by_country(self, country_code: str, limit: int = 5) -> List[Dict[str, Any]]:
        return self._fetch_all(
            """
            SELECT trend_keyword,
                   COUNT(DISTINCT id) AS article_count,
                   COALESCE(SUM(views), 0) AS total_views,
                   AVG(trend_rank)::float AS avg_rank
            FROM articles
            WHERE country_code = %s AND status = 'published'
            GROUP BY trend_keyword
            ORDER BY total_views DESC, trend_keyword
            LIMIT %s
            """,
            (country_code, limit)
        )

    def views_by_country(self, limit: int = 20) -> List[Dict[str, Any]]:
        return self._fetch_all(
            """
            SELECT viewer_country_code, viewer_country, COUNT(*) AS view_count
            FROM article_views
            WHERE viewer_country_code != 'XX'
            GROUP BY viewer_country_code, viewer_country
            ORDER BY view_count DESC, viewer_country_code
            LIMIT %s
            """,
            (limit,)
        )

    def ping(self) -> bool:
        """資料庫是否可用"""
        if self.pool is None:
            return False
        try:
            self._fetch_all("SELECT 1 AS ok")
            return True
        except psycopg2.Error as e:
            logger.warning(f"Postgres ping failed: {e}")
            return False

    def close(self):
        """關閉連線池"""
        if self.pool:
            self.pool.closeall()
            self.pool = None
            logger.info("Postgres connection pool closed")
