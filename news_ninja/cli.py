"""
CLI: Command Line Interface for News Ninja

支援 generate、serve 和 init-config 命令。
"""

import asyncio
import sys
from pathlib import Path
import logging

import click
import httpx
from dotenv import load_dotenv

from news_ninja.config import ConfigurationError, NewsNinjaConfig
from news_ninja.models import RunStatistics
from news_ninja.processing.orchestrator import build_orchestrator
from news_ninja.storage.file_store import FileStore
from news_ninja.storage.pg_store import PostgresStore
from news_ninja.utils.time import format_duration

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

EXAMPLE_CONFIG = Path(__file__).parent.parent / 'config.example.yaml'


@click.group()
def cli():
    """News Ninja: trending topics -> researched AI articles"""
    load_dotenv()


@cli.command()
@click.argument('country_count', type=click.IntRange(min=1), default=2)
@click.argument('topics_per_country', type=click.IntRange(min=1), default=2)
def generate(country_count: int, topics_per_country: int):
    """執行一次文章生成 pipeline"""

    click.echo("=" * 60)
    click.echo("News Ninja Article Generator")
    click.echo("=" * 60)

    try:
        cfg = load_config()
        storage = initialize_storage(cfg)
    except ConfigurationError as e:
        click.echo(f"✗ Configuration error: {e}", err=True)
        sys.exit(1)

    credentials = cfg.credential_summary()
    click.echo(f"Countries: {country_count}, topics per country: {topics_per_country}")
    click.echo(f"Ollama: {cfg.ollama.base_url} ({cfg.ollama.model})")
    click.echo("Credentials: " + ", ".join(
        f"{name}={'yes' if ok else 'no'}" for name, ok in credentials.items()
    ))

    try:
        stats = asyncio.run(run_pipeline(cfg, storage, country_count, topics_per_country))
    finally:
        storage.close()

    print_summary(stats)


async def run_pipeline(cfg: NewsNinjaConfig, storage, country_count: int, topics_per_country: int) -> RunStatistics:
    async with httpx.AsyncClient() as client:
        orchestrator = build_orchestrator(cfg, storage, client)
        return await orchestrator.run(country_count, topics_per_country)


def print_summary(stats: RunStatistics):
    """輸出 run 摘要"""
    click.echo("\n" + "=" * 60)
    click.echo("RUN SUMMARY")
    click.echo("=" * 60)
    click.echo(f"Run ID: {stats.run_id}")
    click.echo(f"Duration: {format_duration(stats.duration_seconds)}")
    click.echo(f"Countries: {stats.countries_processed} processed, {stats.countries_failed} failed")
    click.echo(f"Topics attempted: {stats.topics_attempted}")
    click.echo(f"Articles: {stats.articles_succeeded} succeeded, {stats.articles_failed} failed")
    click.echo(f"Searches: {stats.searches_succeeded} succeeded, {stats.searches_failed} failed")
    click.echo(f"Trends: {stats.trends_real} real, {stats.trends_mock} mock "
               f"({stats.trend_provider_calls} provider calls)")
    if stats.trend_quota_remaining is not None:
        click.echo(f"Trend quota remaining: {stats.trend_quota_remaining}")
    click.echo(f"Trend snapshots: {stats.snapshots_saved} saved, {stats.snapshots_failed} failed")
    if stats.article_ids:
        click.echo(f"Article IDs: {', '.join(str(i) for i in stats.article_ids)}")


@cli.command()
def serve():
    """啟動 REST API"""
    import uvicorn
    from news_ninja.api.app import create_app

    try:
        cfg = load_config()
        storage = initialize_storage(cfg)
    except ConfigurationError as e:
        click.echo(f"✗ Configuration error: {e}", err=True)
        sys.exit(1)

    app = create_app(cfg, storage)
    click.echo(f"✓ News Ninja API on http://{cfg.api.host}:{cfg.api.port}")
    uvicorn.run(app, host=cfg.api.host, port=cfg.api.port)


@cli.command()
@click.argument('out', default='config.yaml')
def init_config(out: str):
    """產生範本設定檔"""

    if EXAMPLE_CONFIG.exists():
        content = EXAMPLE_CONFIG.read_text(encoding='utf-8')
    else:
        # Minimal fallback
        content = """# News Ninja configuration
storage:
  backend: files
  data_dir: data
"""

    with open(out, 'w', encoding='utf-8') as f:
        f.write(content)

    click.echo(f"✓ Config file created: {out}")
    click.echo(f"  Edit this file and run: NEWS_NINJA_CONFIG={out} news-ninja generate")


def load_config() -> NewsNinjaConfig:
    """讀取設定 (環境變數 / NEWS_NINJA_CONFIG)"""
    try:
        return NewsNinjaConfig.from_env()
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def initialize_storage(cfg: NewsNinjaConfig):
    """初始化儲存後端（fail fast，不 fallback）"""
    cfg.require_storage()

    if cfg.storage.backend == "postgres":
        logger.info("Initializing Postgres storage...")
        try:
            return PostgresStore(
                cfg.storage.postgres_dsn,
                min_connections=cfg.storage.pool_min_connections,
                max_connections=cfg.storage.pool_max_connections,
                auto_init_schema=True
            )
        except RuntimeError as e:
            raise ConfigurationError(str(e)) from e

    logger.info("Using file storage backend")
    return FileStore(cfg.storage.data_dir)


if __name__ == "__main__":
    cli()
