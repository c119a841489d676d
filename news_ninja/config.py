"""
Configuration schemas using Pydantic

定義完整的配置結構，包含 Ollama、Trends provider、Search provider、Pipeline 節奏、
儲存後端與 REST API 設定。憑證一律來自環境變數，缺少時 provider 視為不可用（不報錯）。
"""

from typing import Dict, List, Literal, Mapping, Optional
from pydantic import BaseModel, Field
import os


class ConfigurationError(ValueError):
    """啟動期設定錯誤（例如 postgres 模式缺少 DATABASE_URL）"""


class OllamaConfig(BaseModel):
    """LLM inference endpoint 設定"""
    base_url: str = Field(default="http://localhost:11434", description="Ollama server URL")
    model: str = Field(default="mistral-nemo:latest", description="模型名稱")
    temperature: float = Field(default=0.7, description="取樣溫度")
    top_p: float = Field(default=0.9, description="Nucleus sampling p")
    num_predict: int = Field(default=2500, description="最大輸出 tokens")
    timeout_seconds: float = Field(default=120.0, description="生成 timeout (秒)")
    health_timeout_seconds: float = Field(default=5.0, description="健康檢查 timeout (秒)")


class TrendsConfig(BaseModel):
    """Trends provider 設定"""
    providers: List[str] = Field(default_factory=lambda: ["serpapi"], description="Provider 優先序 (mock 永遠是最後手段)")
    use_real_trends: bool = Field(default=True, description="是否啟用真實 trends provider")
    serpapi_key: Optional[str] = Field(None, description="SerpAPI key")
    serpapi_url: str = Field(default="https://serpapi.com/search", description="SerpAPI endpoint")
    monthly_quota: int = Field(default=100, description="SerpAPI 每月額度")
    max_candidates: int = Field(default=20, description="每次最多取幾筆真實 trends")
    timeout_seconds: float = Field(default=15.0, description="Trends 請求 timeout (秒)")


class SearchConfig(BaseModel):
    """Web search provider 設定"""
    providers: List[str] = Field(default_factory=lambda: ["google", "duckduckgo"], description="Search provider 優先序")
    google_api_key: Optional[str] = Field(None, description="Google Custom Search API key")
    google_cx: Optional[str] = Field(None, description="Google Custom Search engine id")
    google_url: str = Field(default="https://www.googleapis.com/customsearch/v1", description="Google CSE endpoint")
    duckduckgo_enabled: bool = Field(default=True, description="是否啟用 DuckDuckGo HTML 搜尋")
    duckduckgo_url: str = Field(default="https://html.duckduckgo.com/html/", description="DuckDuckGo HTML endpoint")
    max_results: int = Field(default=5, description="每次搜尋最多 snippets")
    timeout_seconds: float = Field(default=10.0, description="搜尋 timeout (秒)")


class PipelineRunConfig(BaseModel):
    """Pipeline 執行節奏設定"""
    run_timezone: str = Field(default="UTC", description="執行時區 (trend snapshot 日期用)")
    country_codes: List[str] = Field(default_factory=list, description="國家清單 (空=預設 20 國)")
    topic_delay_seconds: float = Field(default=2.0, description="每個 topic 之間的暫停")
    country_delay_seconds: float = Field(default=3.0, description="每個國家之間的暫停")
    research_delay_seconds: float = Field(default=1.0, description="搜尋後、生成前的暫停")
    save_trend_snapshots: bool = Field(default=True, description="是否寫入 trend snapshot")


class StorageConfig(BaseModel):
    """儲存後端設定"""
    backend: Literal["postgres", "files"] = Field(default="postgres", description="儲存後端")
    postgres_dsn: Optional[str] = Field(None, description="Postgres DSN")
    pool_min_connections: int = Field(default=1, description="連線池最小連線數")
    pool_max_connections: int = Field(default=20, description="連線池最大連線數")
    data_dir: str = Field(default="data", description="files 後端資料目錄")


class ApiConfig(BaseModel):
    """REST API 設定"""
    host: str = Field(default="0.0.0.0", description="綁定位址")
    port: int = Field(default=5000, description="埠號")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"], description="允許的 CORS origins")
    default_article_limit: int = Field(default=20, description="文章列表預設筆數")


class NewsNinjaConfig(BaseModel):
    """完整設定 schema"""
    ollama: OllamaConfig = Field(default_factory=OllamaConfig, description="LLM 設定")
    trends: TrendsConfig = Field(default_factory=TrendsConfig, description="Trends 設定")
    search: SearchConfig = Field(default_factory=SearchConfig, description="Search 設定")
    pipeline: PipelineRunConfig = Field(default_factory=PipelineRunConfig, description="Pipeline 設定")
    storage: StorageConfig = Field(default_factory=StorageConfig, description="儲存設定")
    api: ApiConfig = Field(default_factory=ApiConfig, description="API 設定")

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "NewsNinjaConfig":
        """從 YAML 檔案載入設定"""
        import yaml
        with open(yaml_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "NewsNinjaConfig":
        """
        從環境變數載入設定

        若 NEWS_NINJA_CONFIG 指向 YAML 檔，先載入該檔，再以環境變數覆寫。

        Args:
            environ: 環境變數 mapping (預設 os.environ)

        Returns:
            NewsNinjaConfig
        """
        env = os.environ if environ is None else environ

        yaml_path = env.get("NEWS_NINJA_CONFIG")
        cfg = cls.from_yaml(yaml_path) if yaml_path else cls()

        if env.get("OLLAMA_URL"):
            cfg.ollama.base_url = env["OLLAMA_URL"].rstrip("/")
        if env.get("OLLAMA_MODEL"):
            cfg.ollama.model = env["OLLAMA_MODEL"]

        if env.get("SERPAPI_KEY"):
            cfg.trends.serpapi_key = env["SERPAPI_KEY"]
        if "USE_REAL_TRENDS" in env:
            cfg.trends.use_real_trends = env["USE_REAL_TRENDS"].strip().lower() != "false"
        if env.get("TREND_PROVIDERS"):
            cfg.trends.providers = _split_list(env["TREND_PROVIDERS"])

        if env.get("GOOGLE_API_KEY"):
            cfg.search.google_api_key = env["GOOGLE_API_KEY"]
        if env.get("GOOGLE_SEARCH_ENGINE_ID"):
            cfg.search.google_cx = env["GOOGLE_SEARCH_ENGINE_ID"]
        if env.get("SEARCH_PROVIDERS"):
            cfg.search.providers = _split_list(env["SEARCH_PROVIDERS"])

        if env.get("DATABASE_URL"):
            cfg.storage.postgres_dsn = env["DATABASE_URL"]
        if env.get("NEWS_NINJA_STORAGE"):
            cfg.storage.backend = env["NEWS_NINJA_STORAGE"].strip().lower()
        if env.get("NEWS_NINJA_DATA_DIR"):
            cfg.storage.data_dir = env["NEWS_NINJA_DATA_DIR"]

        if env.get("API_HOST"):
            cfg.api.host = env["API_HOST"]
        if env.get("API_PORT"):
            cfg.api.port = int(env["API_PORT"])

        # 重新驗證 (backend literal 等)
        return cls.model_validate(cfg.model_dump())

    def require_storage(self) -> None:
        """啟動期檢查儲存設定（fail fast）"""
        if self.storage.backend == "postgres" and not self.storage.postgres_dsn:
            raise ConfigurationError("Postgres storage requires DATABASE_URL")

    def credential_summary(self) -> Dict[str, bool]:
        """各外部服務是否已設定憑證（不含憑證本身）"""
        return {
            "serpapi": bool(self.trends.serpapi_key) and self.trends.use_real_trends,
            "google_search": bool(self.search.google_api_key and self.search.google_cx),
            "duckduckgo": self.search.duckduckgo_enabled,
            "database": bool(self.storage.postgres_dsn),
        }


def _split_list(value: str) -> List[str]:
    return [part.strip().lower() for part in value.split(",") if part.strip()]
