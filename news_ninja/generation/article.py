"""
Article generation

build_article_prompt() 組出含主題、趨勢數據、research 文字與輸出模板的 prompt；
parse_article() 是純函式，將模型的自由文字輸出解析為 {title, summary, body}。
解析失敗時各欄位獨立套用預設值：
    title   -> "Untitled Article"
    summary -> ""
    body    -> 完整原始輸出 (不遺失任何資訊)
"""

import re
from typing import Optional
import logging

from news_ninja.generation.ollama import OllamaClient
from news_ninja.models import GeneratedArticle, ResearchContext, Topic
from news_ninja.utils.countries import language_name

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Article"
EMPTY_BODY = "Content is not available for this article."

_LABEL = r"^[ \t]*(?:\d+[.)][ \t]*)?[#*_]*[ \t]*{name}[*_]*[ \t]*:[*_]*"
_CONTENT_NAME = r"(?:MAIN[ \t]+)?CONTENT"

# 空白標題不可吃掉下一個標籤
_NOT_LABEL = r"(?!(?:\d+[.)][ \t]*)?[#*_]*[ \t]*(?:HEADLINE|SUMMARY|" + _CONTENT_NAME + r")[*_]*[ \t]*:)"

_HEADLINE_RE = re.compile(
    _LABEL.format(name="HEADLINE") + r"[ \t]*(?:\n[ \t]*)?" + _NOT_LABEL + r"(?P<value>[^\n]+)",
    re.IGNORECASE | re.MULTILINE,
)
# 第一行前面有客套話，如 "Sure! HEADLINE: ..."
_LEAD_HEADLINE_RE = re.compile(
    r"\A\s*[^\n]*?[.!?:][ \t]+[#*_]*[ \t]*HEADLINE[*_]*[ \t]*:[*_]*[ \t]*" + _NOT_LABEL + r"(?P<value>[^\n]+)",
    re.IGNORECASE,
)
_SUMMARY_RE = re.compile(
    _LABEL.format(name="SUMMARY")
    + r"(?P<value>.*?)"
    + r"(?=\n[ \t]*\n|" + _LABEL.format(name="(?:" + _CONTENT_NAME + "|HEADLINE)") + r"|\Z)",
    re.IGNORECASE | re.DOTALL | re.MULTILINE,
)
_CONTENT_RE = re.compile(
    _LABEL.format(name=_CONTENT_NAME)
    + r"(?P<value>.*?)"
    + r"(?=" + _LABEL.format(name="(?:HEADLINE|SUMMARY)") + r"|\Z)",
    re.IGNORECASE | re.DOTALL | re.MULTILINE,
)


def _clean(value: str) -> str:
    return value.strip().strip("*_").strip().strip('"').strip()


def parse_article(text: Optional[str]) -> GeneratedArticle:
    """
    解析 LLM 輸出

    依 HEADLINE: / SUMMARY: / CONTENT: 三段標籤擷取（不分大小寫，容忍 markdown 粗體、
    多餘空白與段落順序調換）。

    Args:
        text: 模型原始輸出

    Returns:
        GeneratedArticle (title 與 body 永不為空)
    """
    raw = text or ""

    headline = _HEADLINE_RE.search(raw) or _LEAD_HEADLINE_RE.search(raw)
    summary = _SUMMARY_RE.search(raw)
    content = _CONTENT_RE.search(raw)

    title = _clean(headline.group("value")) if headline else ""
    summary_text = _clean(summary.group("value")) if summary else ""
    body = content.group("value").strip() if content else ""

    return GeneratedArticle(
        title=title or DEFAULT_TITLE,
        summary=summary_text,
        body=body or raw.strip() or EMPTY_BODY,
    )


def build_article_prompt(
    topic: Topic,
    context: ResearchContext,
    language: str,
    country_name: str
) -> str:
    """
    組出文章生成 prompt

    Args:
        topic: 主題
        context: research 結果
        language: 語言代碼
        country_name: 讀者所在國家

    Returns:
        prompt 字串
    """
    lang = language_name(language)

    if topic.is_real:
        trend_line = (f"TREND DATA: This topic is TRENDING NOW with {topic.popularity_score:,.0f} "
                      f"recent searches and growing at {topic.growth_rate:.0f}%")
    else:
        trend_line = (f"TREND DATA: This topic is trending with {topic.popularity_score:,.0f} "
                      f"recent visitors and growing at {topic.growth_rate:.0f}%")

    if context.is_fallback:
        research_header = "BACKGROUND (no live web results, rely on your general knowledge):"
    else:
        research_header = "RESEARCH DATA FROM WEB:"

    return f"""You are a professional journalist writing for readers in {country_name}.

TOPIC: {topic.keyword}
{trend_line}

{research_header}
{context.text}

YOUR TASK: Write a comprehensive, engaging news article in {lang} with the following structure:

1. HEADLINE: Create a catchy, informative headline (max 100 characters)
2. SUMMARY: Write a compelling summary paragraph (2-3 sentences) that captures the essence
3. MAIN CONTENT: Write 4-6 well-structured paragraphs (~600-800 words total) that:
   - Explain what this trend is about
   - Include key facts from the research data
   - Explain why this matters to readers in {country_name}
   - Provide relevant context and background
   - Use a professional, journalistic tone

FORMAT YOUR RESPONSE EXACTLY LIKE THIS:
HEADLINE: [Your headline here]

SUMMARY: [Your 2-3 sentence summary here]

CONTENT:
[Your main article content here - 4-6 paragraphs]

CRITICAL INSTRUCTIONS:
- Write ENTIRELY in {lang}
- Use information from the research data provided
- Be factual and accurate
- Use natural, fluent language, do not translate word-by-word
- Make it engaging for a {country_name} audience"""


class ArticleGenerator:
    """Topic + ResearchContext -> GeneratedArticle"""

    def __init__(self, llm: OllamaClient):
        self.llm = llm

    async def generate(
        self,
        topic: Topic,
        context: ResearchContext,
        language: str,
        country_name: str
    ) -> GeneratedArticle:
        """
        生成一篇文章

        Raises:
            GenerationError: LLM 呼叫失敗（不重試）
        """
        prompt = build_article_prompt(topic, context, language, country_name)
        logger.info(f"Ollama generating ({language_name(language)}) for \"{topic.keyword}\"...")

        raw = await self.llm.generate(prompt)
        article = parse_article(raw)

        if article.title == DEFAULT_TITLE:
            logger.warning(f"Model output for \"{topic.keyword}\" did not follow the template")

        return article
