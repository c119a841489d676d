"""
Ollama inference client

POST {base_url}/api/generate (stream=false)。錯誤包成 GenerationError，不重試：
重試與否由 orchestrator 以 topic 為單位決定。
"""

from typing import Optional
import logging

import httpx

from news_ninja.config import OllamaConfig

logger = logging.getLogger(__name__)


class GenerationError(RuntimeError):
    """單次生成失敗 (HTTP 錯誤、timeout、回應格式錯誤)"""


class OllamaClient:
    """Ollama /api/generate 客戶端"""

    def __init__(self, config: OllamaConfig, client: httpx.AsyncClient):
        self.config = config
        self.client = client

    @property
    def base_url(self) -> str:
        return self.config.base_url.rstrip("/")

    async def generate(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        top_p: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> str:
        """
        呼叫 LLM 產生文字

        Args:
            prompt: 完整 prompt
            temperature: 取樣溫度 (預設用設定值)
            top_p: nucleus p (預設用設定值)
            max_tokens: num_predict (預設用設定值)

        Returns:
            模型輸出的原始文字

        Raises:
            GenerationError: HTTP 錯誤、timeout 或回應缺少 response 欄位
        """
        payload = {
            "model": self.config.model,
            "prompt": prompt,
            "stream": False,
            "options": {
                "temperature": self.config.temperature if temperature is None else temperature,
                "top_p": self.config.top_p if top_p is None else top_p,
                "num_predict": self.config.num_predict if max_tokens is None else max_tokens,
            },
        }

        try:
            response = await self.client.post(
                f"{self.base_url}/api/generate",
                json=payload,
                timeout=self.config.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.error(f"Ollama timeout after {self.config.timeout_seconds}s")
            raise GenerationError(f"Ollama request timed out: {e}") from e
        except httpx.HTTPError as e:
            logger.error(f"Ollama API error: {e}")
            raise GenerationError(f"Failed to generate content with Ollama: {e}") from e
        except ValueError as e:
            raise GenerationError(f"Ollama returned invalid JSON: {e}") from e

        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise GenerationError("Ollama response has no 'response' text")

        return text

    async def is_reachable(self) -> bool:
        """GET /api/tags 是否成功（健康檢查用）"""
        try:
            response = await self.client.get(
                f"{self.base_url}/api/tags",
                timeout=self.config.health_timeout_seconds,
            )
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning(f"Ollama unreachable: {e}")
            return False
