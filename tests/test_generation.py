"""
Tests for the Ollama client and ArticleGenerator
"""

import asyncio
import json

import httpx
import pytest

from news_ninja.collectors.research import fallback_context
from news_ninja.config import OllamaConfig
from news_ninja.generation.article import DEFAULT_TITLE, ArticleGenerator, build_article_prompt
from news_ninja.generation.ollama import GenerationError, OllamaClient
from news_ninja.models import ResearchContext, Snippet, Topic


def create_test_topic(keyword: str = "solar power", is_real: bool = True) -> Topic:
    """Helper to create test topic"""
    return Topic(
        keyword=keyword,
        source_country="IT",
        rank=1,
        popularity_score=200000,
        growth_rate=150,
        is_real=is_real,
    )


def call_ollama(handler, coro_factory):
    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            llm = OllamaClient(OllamaConfig(base_url="http://ollama.test:11434/"), client)
            return await coro_factory(llm)

    return asyncio.run(_run())


class FakeLLM:
    def __init__(self, response: str):
        self.response = response
        self.prompts = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.response


def test_generate_sends_bounded_options():
    """測試 /api/generate 請求內容"""
    seen = []

    def handler(request):
        seen.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"response": "HEADLINE: Hi", "done": True})

    text = call_ollama(handler, lambda llm: llm.generate("prompt text"))

    assert text == "HEADLINE: Hi"
    path, payload = seen[0]
    assert path == "/api/generate"
    assert payload["model"] == "mistral-nemo:latest"
    assert payload["prompt"] == "prompt text"
    assert payload["stream"] is False
    assert payload["options"] == {"temperature": 0.7, "top_p": 0.9, "num_predict": 2500}


def test_generate_option_overrides():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"response": "ok"})

    call_ollama(handler, lambda llm: llm.generate("p", temperature=0.2, max_tokens=100))

    assert seen[0]["options"]["temperature"] == 0.2
    assert seen[0]["options"]["num_predict"] == 100


def test_generate_http_error_raises_generation_error():
    def handler(request):
        return httpx.Response(500, text="model crashed")

    with pytest.raises(GenerationError):
        call_ollama(handler, lambda llm: llm.generate("p"))


def test_generate_timeout_raises_generation_error():
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(GenerationError, match="timed out"):
        call_ollama(handler, lambda llm: llm.generate("p"))


def test_generate_missing_response_field():
    def handler(request):
        return httpx.Response(200, json={"error": "model not found"})

    with pytest.raises(GenerationError):
        call_ollama(handler, lambda llm: llm.generate("p"))


def test_generate_invalid_json():
    def handler(request):
        return httpx.Response(200, text="not json")

    with pytest.raises(GenerationError):
        call_ollama(handler, lambda llm: llm.generate("p"))


def test_is_reachable():
    def handler(request):
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": []})

    assert call_ollama(handler, lambda llm: llm.is_reachable()) is True


def test_is_not_reachable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    assert call_ollama(handler, lambda llm: llm.is_reachable()) is False


def test_prompt_embeds_topic_and_research():
    """測試 prompt 內容"""
    context = ResearchContext(
        topic="solar power",
        language="it",
        snippets=[Snippet(title="Record output", body="Italy produced record solar output.")],
    )
    prompt = build_article_prompt(create_test_topic(), context, "it", "Italy")

    assert "professional journalist" in prompt
    assert "readers in Italy" in prompt
    assert "TOPIC: solar power" in prompt
    assert "200,000" in prompt
    assert "150%" in prompt
    assert "RESEARCH DATA FROM WEB:" in prompt
    assert "[Source 1] Record output\nItaly produced record solar output." in prompt
    assert "HEADLINE:" in prompt and "SUMMARY:" in prompt and "CONTENT:" in prompt
    assert "600-800 words" in prompt
    assert "Write ENTIRELY in Italian" in prompt


def test_prompt_marks_fallback_research():
    prompt = build_article_prompt(
        create_test_topic(is_real=False), fallback_context("solar power"), "en", "United States"
    )

    assert "RESEARCH DATA FROM WEB:" not in prompt
    assert "general knowledge" in prompt
    assert "General information about solar power" in prompt


def test_generator_parses_model_output():
    llm = FakeLLM("HEADLINE: Sun wins\n\nSUMMARY: Record day.\n\nCONTENT:\nLong story.")
    generator = ArticleGenerator(llm)

    article = asyncio.run(generator.generate(create_test_topic(), fallback_context("solar power"), "it", "Italy"))

    assert article.title == "Sun wins"
    assert article.summary == "Record day."
    assert article.body == "Long story."
    assert "solar power" in llm.prompts[0]


def test_generator_defaults_on_free_text():
    """輸出不符模板時 title/body 仍不為空"""
    generator = ArticleGenerator(FakeLLM("Just prose."))

    article = asyncio.run(generator.generate(create_test_topic(), fallback_context("x"), "en", "United States"))

    assert article.title == DEFAULT_TITLE
    assert article.summary == ""
    assert article.body == "Just prose."


def test_generator_propagates_generation_error():
    class FailingLLM:
        async def generate(self, prompt):
            raise GenerationError("down")

    generator = ArticleGenerator(FailingLLM())

    with pytest.raises(GenerationError):
        asyncio.run(generator.generate(create_test_topic(), fallback_context("x"), "en", "United States"))
