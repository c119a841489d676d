"""
File-based storage backend

與 PostgresStore 相同的介面，資料存在本地 JSON 檔（本機開發、測試用）：
    articles.json         文章
    trends.json           trend snapshots ((country_code, keyword, analyzed_date) 唯一)
    article_views.jsonl   ViewEvent (append-only)
"""

import json
import threading
from collections import defaultdict
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

from news_ninja.models import Article, ArticleRecord, ArticleStatus, Topic, TrendSnapshot, ViewEvent
from news_ninja.utils.time import utcnow

logger = logging.getLogger(__name__)


class FileStore:
    """檔案儲存後端"""

    def __init__(self, base_dir: str = "data"):
        """
        初始化 FileStore

        Args:
            base_dir: 基礎目錄
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

        self.articles_file = self.base_dir / "articles.json"
        self.trends_file = self.base_dir / "trends.json"
        self.views_file = self.base_dir / "article_views.jsonl"

        self._lock = threading.RLock()

        logger.info(f"FileStore initialized at {self.base_dir}")

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    def _read_json(self, path: Path) -> List[Dict[str, Any]]:
        if not path.exists():
            return []
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def _write_json(self, path: Path, rows: List[Dict[str, Any]]) -> None:
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(rows, f, indent=2, ensure_ascii=False, default=str)
        tmp_path.replace(path)

    def _read_views(self) -> List[ViewEvent]:
        if not self.views_file.exists():
            return []
        with open(self.views_file, 'r', encoding='utf-8') as f:
            return [ViewEvent(**json.loads(line)) for line in f if line.strip()]

    def _articles(self) -> List[Article]:
        return [Article(**row) for row in self._read_json(self.articles_file)]

    def _published(self) -> List[Article]:
        return [a for a in self._articles() if a.status == ArticleStatus.PUBLISHED]

    def _update_article_views(self, article_id: int) -> Optional[int]:
        rows = self._read_json(self.articles_file)
        for row in rows:
            if row["id"] == article_id:
                row["views"] = int(row.get("views", 0)) + 1
                self._write_json(self.articles_file, rows)
                return row["views"]
        return None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_article(self, record: ArticleRecord) -> int:
        """寫入一篇文章，回傳新 id"""
        with self._lock:
            rows = self._read_json(self.articles_file)
            article_id = max((row["id"] for row in rows), default=0) + 1
            now = utcnow()

            article = Article(
                id=article_id,
                views=0,
                published_at=now,
                created_at=now,
                **record.model_dump(),
            )
            rows.append(article.model_dump(mode="json"))
            self._write_json(self.articles_file, rows)

        logger.info(f"Written article {article_id}: {self.articles_file}")
        return article_id

    def save_trend_snapshot(
        self,
        country_code: str,
        country_name: str,
        topics: List[Topic],
        analyzed_date: date
    ) -> int:
        """Upsert trend snapshot，(country_code, keyword, analyzed_date) 衝突時覆寫"""
        if not topics:
            return 0

        with self._lock:
            rows = self._read_json(self.trends_file)
            index = {
                (row["country_code"], row["keyword"], row["analyzed_date"]): i
                for i, row in enumerate(rows)
            }

            written = set()
            for topic in topics:
                snapshot = TrendSnapshot(
                    country_code=country_code,
                    country_name=country_name,
                    keyword=topic.keyword,
                    rank=topic.rank,
                    visitors=topic.popularity_score,
                    growth_rate=topic.growth_rate,
                    analyzed_date=analyzed_date,
                ).model_dump(mode="json")

                key = (country_code, topic.keyword, snapshot["analyzed_date"])
                if key in index:
                    rows[index[key]] = snapshot
                else:
                    index[key] = len(rows)
                    rows.append(snapshot)
                written.add(key)

            self._write_json(self.trends_file, rows)

        logger.info(f"Written {len(written)} trends for {country_code} ({analyzed_date})")
        return len(written)

    def increment_views(self, article_id: int) -> Optional[int]:
        """views + 1，回傳新值（文章不存在時回傳 None）"""
        with self._lock:
            return self._update_article_views(article_id)

    def record_view(self, article_id: int, viewer_country: str = "Unknown",
                    viewer_country_code: str = "XX") -> Optional[int]:
        """寫入 ViewEvent 並 views + 1"""
        with self._lock:
            views = self._update_article_views(article_id)
            if views is None:
                return None

            event = ViewEvent(
                article_id=article_id,
                viewer_country=viewer_country,
                viewer_country_code=viewer_country_code,
                viewed_at=utcnow(),
            )
            with open(self.views_file, 'a', encoding='utf-8') as f:
                f.write(json.dumps(event.model_dump(mode="json"), ensure_ascii=False) + '\n')

        return views

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_recent(self, limit: int = 20, country_code: Optional[str] = None) -> List[Article]:
        with self._lock:
            articles = self._published()
        if country_code:
            articles = [a for a in articles if a.country_code == country_code]
        articles.sort(key=lambda a: (a.published_at, a.id), reverse=True)
        return articles[:limit]

    def get_by_id(self, article_id: int) -> Optional[Article]:
        with self._lock:
            for article in self._articles():
                if article.id == article_id:
                    return article
        return None

    def get_trend_snapshot(self, country_code: str, analyzed_date: date) -> List[TrendSnapshot]:
        with self._lock:
            rows = self._read_json(self.trends_file)
        snapshots = [
            TrendSnapshot(**row) for row in rows
            if row["country_code"] == country_code and row["analyzed_date"] == analyzed_date.isoformat()
        ]
        return sorted(snapshots, key=lambda s: s.rank)

    def country_stats(self) -> List[Dict[str, Any]]:
        with self._lock:
            articles = self._published()

        grouped: Dict[tuple, Dict[str, Any]] = {}
        for a in articles:
            key = (a.country_code, a.country_name)
            entry = grouped.setdefault(key, {
                "country_name": a.country_name,
                "country_code": a.country_code,
                "article_count": 0,
                "total_views": 0,
            })
            entry["article_count"] += 1
            entry["total_views"] += a.views

        return sorted(grouped.values(), key=lambda e: (-e["article_count"], e["country_code"]))

    def _by_keyword(self, articles: List[Article]) -> Dict[str, List[Article]]:
        grouped: Dict[str, List[Article]] = defaultdict(list)
        for a in articles:
            grouped[a.trend_keyword].append(a)
        return grouped

    def country_trends(self, country_code: str, limit: int = 10) -> List[Dict[str, Any]]:
        with self._lock:
            articles = [a for a in self._published() if a.country_code == country_code]

        rows = [
            {
                "keyword": keyword,
                "article_count": len(group),
                "avg_rank": sum(a.trend_rank for a in group) / len(group),
            }
            for keyword, group in self._by_keyword(articles).items()
        ]
        rows.sort(key=lambda r: (-r["article_count"], r["keyword"]))
        return rows[:limit]

    def top_articles(self, limit: int = 10) -> List[Dict[str, Any]]:
        with self._lock:
            articles = self._published()
        articles.sort(key=lambda a: (-a.views, a.id))
        return [
            {
                "id": a.id,
                "title": a.title,
                "country_name": a.country_name,
                "country_code": a.country_code,
                "views": a.views,
                "trend_keyword": a.trend_keyword,
            }
            for a in articles[:limit]
        ]

    def top_by_viewer_country(self, viewer_country_code: str, limit: int = 5) -> List[Dict[str, Any]]:
        with self._lock:
            articles = {a.id: a for a in self._published()}
            events = self._read_views()

        counts: Dict[int, int] = defaultdict(int)
        for event in events:
            if event.viewer_country_code == viewer_country_code and event.article_id in articles:
                counts[event.article_id] += 1

        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]
        return [
            {
                "id": article_id,
                "title": articles[article_id].title,
                "country_name": articles[article_id].country_name,
                "views": articles[article_id].views,
                "country_views": count,
            }
            for article_id, count in ranked
        ]

    def global_trending(self, limit: int = 5) -> List[Dict[str, Any]]:
        with self._lock:
            articles = self._published()

        rows = [
            {
                "trend_keyword": keyword,
                "article_count": len(group),
                "total_views": sum(a.views for a in group),
            }
            for keyword, group in self._by_keyword(articles).items()
        ]
        rows.sort(key=lambda r: (-r["total_views"], r["trend_keyword"]))
        return rows[:limit]

    def trending_by_country(self, country_code: str, limit: int = 5) -> List[Dict[str, Any]]:
        with self._lock:
            articles = [a for a in self._published() if a.country_code == country_code]

        rows = [
            {
                "trend_keyword": keyword,
                "article_count": len(group),
                "total_views": sum(a.views for a in group),
                "avg_rank": sum(a.trend_rank for a in group) / len(group),
            }
            for keyword, group in self._by_keyword(articles).items()
        ]
        rows.sort(key=lambda r: (-r["total_views"], r["trend_keyword"]))
        return rows[:limit]

    def views_by_country(self, limit: int = 20) -> List[Dict[str, Any]]:
        with self._lock:
            events = self._read_views()

        counts: Dict[tuple, int] = defaultdict(int)
        for event in events:
            if event.viewer_country_code != "XX":
                counts[(event.viewer_country_code, event.viewer_country)] += 1

        rows = [
            {"viewer_country_code": code, "viewer_country": name, "view_count": count}
            for (code, name), count in counts.items()
        ]
        rows.sort(key=lambda r: (-r["view_count"], r["viewer_country_code"]))
        return rows[:limit]

    def ping(self) -> bool:
        return self.base_dir.is_dir()

    def close(self):
        pass
