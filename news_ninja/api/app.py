"""
REST API

前端使用的 HTTP 介面：文章、趨勢統計、瀏覽追蹤與分析、健康檢查。
所有成功回應為 {"success": true, "data": ...}；錯誤為 {"success": false, "error": "..."}。
"""

import asyncio
from contextlib import asynccontextmanager
from typing import List, Optional
import logging

import httpx
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from news_ninja.config import NewsNinjaConfig
from news_ninja.generation.ollama import OllamaClient
from news_ninja.models import Topic
from news_ninja.processing.orchestrator import PipelineOrchestrator, build_orchestrator
from news_ninja.utils.countries import country_name as lookup_country_name

logger = logging.getLogger(__name__)


class CustomTrend(BaseModel):
    keyword: str = Field(..., min_length=1)
    visitors: float = Field(default=1000.0, description="熱度")
    growthRate: float = Field(default=50.0, description="成長率 (%)")


class GenerateRequest(BaseModel):
    trends: List[CustomTrend] = Field(default_factory=list)
    countryCode: str = Field(default="US")
    countryName: Optional[str] = None


class TrackRequest(BaseModel):
    country: Optional[str] = None
    countryCode: Optional[str] = None


def _ok(data):
    return {"success": True, "data": data}


def create_app(
    config: Optional[NewsNinjaConfig] = None,
    store=None,
    orchestrator: Optional[PipelineOrchestrator] = None,
    llm: Optional[OllamaClient] = None
) -> FastAPI:
    """
    建立 FastAPI app

    Args:
        config: 設定 (預設 NewsNinjaConfig())
        store: PostgresStore 或 FileStore
        orchestrator: 自訂生成用的 pipeline (預設依設定建立)
        llm: 健康檢查用的 Ollama client (預設依設定建立)

    Returns:
        FastAPI app
    """
    if store is None:
        raise ValueError("create_app requires a storage backend")

    cfg = config or NewsNinjaConfig()
    http_client = httpx.AsyncClient()

    if orchestrator is None:
        orchestrator = build_orchestrator(cfg, store, http_client)
    if llm is None:
        llm = OllamaClient(cfg.ollama, http_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("News Ninja API starting")
        yield
        await http_client.aclose()
        store.close()
        logger.info("News Ninja API stopped")

    app = FastAPI(title="News Ninja API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": str(exc.detail)})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @app.get("/health")
    @app.get("/api/health")
    def health():
        return {"success": True, "message": "News Ninja API is running"}

    @app.get("/health/detailed")
    async def health_detailed():
        try:
            database = await asyncio.to_thread(store.ping)
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            database = False

        llm_ok = await llm.is_reachable()
        return {
            "success": True,
            "status": "healthy" if database and llm_ok else "degraded",
            "services": {"api": True, "database": database, "llm": llm_ok},
        }

    # ------------------------------------------------------------------
    # Articles
    # ------------------------------------------------------------------

    @app.get("/api/articles")
    def list_articles(limit: int = Query(cfg.api.default_article_limit, ge=1, le=200),
                      country: Optional[str] = None):
        articles = store.get_recent(limit=limit, country_code=country)
        return _ok([a.to_api() for a in articles])

    @app.get("/api/articles/{article_id}")
    def get_article(article_id: int):
        article = store.get_by_id(article_id)
        if article is None:
            raise HTTPException(status_code=404, detail="Article not found")

        # 回傳讀取當下的資料，之後才累加
        store.increment_views(article_id)
        return _ok(article.to_api())

    @app.post("/api/articles/generate")
    async def generate_articles(request: GenerateRequest):
        if not request.trends:
            raise HTTPException(status_code=400, detail="No trends provided")

        country_code = request.countryCode.upper()
        country_name = request.countryName or lookup_country_name(country_code)
        topics = [
            Topic(
                keyword=trend.keyword,
                source_country=country_code,
                rank=i + 1,
                popularity_score=trend.visitors,
                growth_rate=trend.growthRate,
                is_real=False,
            )
            for i, trend in enumerate(request.trends)
        ]

        articles, stats = await orchestrator.generate_for_topics(topics, country_code, country_name)
        return _ok({
            "articles": [a.to_api() for a in articles],
            "stats": stats.model_dump(mode="json"),
        })

    # ------------------------------------------------------------------
    # Trends
    # ------------------------------------------------------------------

    @app.get("/api/trends/countries")
    def trend_countries():
        rows = store.country_stats()
        return _ok([
            {
                "dimensions": [row["country_name"], row["country_code"]],
                "metrics": [int(row["total_views"] or 0)],
            }
            for row in rows
        ])

    @app.get("/api/trends/country/{code}")
    def trend_country(code: str):
        rows = store.country_trends(code.upper(), limit=10)
        return _ok([
            {"keyword": row["keyword"], "visitors": int(row["article_count"]), "growthRate": 50.0}
            for row in rows
        ])

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------

    @app.post("/api/analytics/track/{article_id}")
    def track_view(article_id: int, request: Request, body: Optional[TrackRequest] = None):
        body = body or TrackRequest()
        viewer_country = body.country or "Unknown"
        viewer_country_code = body.countryCode or "XX"

        if viewer_country == "Unknown":
            viewer_country_code = (
                request.headers.get("cf-ipcountry")
                or request.headers.get("x-country-code")
                or viewer_country_code
            )

        views = store.record_view(article_id, viewer_country, viewer_country_code.upper())
        if views is None:
            raise HTTPException(status_code=404, detail="Article not found")
        return {"success": True, "views": views}

    @app.get("/api/analytics/top-articles")
    def top_articles(limit: int = Query(10, ge=1, le=100)):
        return _ok(store.top_articles(limit=limit))

    @app.get("/api/analytics/top-by-viewer-country")
    def top_by_viewer_country(country_code: str = Query(..., alias="countryCode"),
                              limit: int = Query(5, ge=1, le=100)):
        return _ok(store.top_by_viewer_country(country_code.upper(), limit=limit))

    @app.get("/api/analytics/global-trending")
    def global_trending(limit: int = Query(5, ge=1, le=100)):
        return _ok(store.global_trending(limit=limit))

    @app.get("/api/analytics/trending-by-country")
    def trending_by_country(country_code: str = Query(..., alias="countryCode"),
                            limit: int = Query(5, ge=1, le=100)):
        return _ok(store.trending_by_country(country_code.upper(), limit=limit))

    @app.get("/api/analytics/views-by-country")
    def views_by_country():
        return _ok(store.views_by_country(limit=20))

    return app
