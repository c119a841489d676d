"""
Tests for LLM output parsing
"""

from news_ninja.generation.article import DEFAULT_TITLE, EMPTY_BODY, parse_article


def test_parse_well_formed_template():
    """測試標準模板"""
    article = parse_article("HEADLINE: X\n\nSUMMARY: Y\n\nCONTENT:\nZ")

    assert article.title == "X"
    assert article.summary == "Y"
    assert article.body == "Z"


def test_parse_multi_paragraph_content():
    text = (
        "HEADLINE: Solar power hits record\n\n"
        "SUMMARY: Output rose sharply this week.\nAnalysts expect more.\n\n"
        "CONTENT:\nFirst paragraph.\n\nSecond paragraph.\n\nThird paragraph."
    )
    article = parse_article(text)

    assert article.title == "Solar power hits record"
    assert article.summary == "Output rose sharply this week.\nAnalysts expect more."
    assert article.body == "First paragraph.\n\nSecond paragraph.\n\nThird paragraph."


def test_parse_missing_sections_use_defaults():
    """測試缺少所有標籤：body 保留完整原文"""
    raw = "The model ignored the template and just wrote prose."
    article = parse_article(raw)

    assert article.title == DEFAULT_TITLE
    assert article.summary == ""
    assert article.body == raw


def test_parse_missing_summary_only():
    article = parse_article("HEADLINE: Only a title\n\nCONTENT:\nBody text.")

    assert article.title == "Only a title"
    assert article.summary == ""
    assert article.body == "Body text."


def test_parse_missing_content_keeps_raw_text():
    raw = "HEADLINE: Title\n\nSUMMARY: Short summary."
    article = parse_article(raw)

    assert article.title == "Title"
    assert article.summary == "Short summary."
    assert article.body == raw


def test_parse_reordered_sections():
    """測試段落順序調換"""
    text = "CONTENT:\nBody first.\n\nHEADLINE: Late title\nSUMMARY: Late summary"
    article = parse_article(text)

    assert article.title == "Late title"
    assert article.summary == "Late summary"
    assert article.body == "Body first."


def test_parse_markdown_and_whitespace_drift():
    """測試 markdown 粗體、大小寫與多餘空白"""
    text = (
        "\n\n  **Headline:**   Big News  \n\n"
        "**summary:**  A quick recap.  \n\n"
        "**CONTENT:**\n\n  Para one.\n\nPara two.  \n\n"
    )
    article = parse_article(text)

    assert article.title == "Big News"
    assert article.summary == "A quick recap."
    assert article.body == "Para one.\n\nPara two."


def test_parse_numbered_labels():
    text = "1. HEADLINE: Numbered\n2. SUMMARY: Also numbered\n\n3. CONTENT:\nText."
    article = parse_article(text)

    assert article.title == "Numbered"
    assert article.summary == "Also numbered"
    assert article.body == "Text."


def test_parse_ignores_labels_inside_prose():
    """內文中的 'In summary:' 不應被當成標籤"""
    text = "HEADLINE: T\n\nCONTENT:\nFirst.\nIn summary: it was fine."
    article = parse_article(text)

    assert article.summary == ""
    assert article.body == "First.\nIn summary: it was fine."


def test_parse_empty_and_none():
    for raw in ("", "   \n  ", None):
        article = parse_article(raw)
        assert article.title == DEFAULT_TITLE
        assert article.summary == ""
        assert article.body == EMPTY_BODY


def test_parse_quoted_headline():
    article = parse_article('HEADLINE: "Quoted Title"\n\nCONTENT:\nx')

    assert article.title == "Quoted Title"


def test_parse_main_content_label():
    """模型照 prompt 回傳 'MAIN CONTENT:' 標籤"""
    article = parse_article("HEADLINE: X\n\nSUMMARY: Y\n\nMAIN CONTENT:\nZ")

    assert article.title == "X"
    assert article.summary == "Y"
    assert article.body == "Z"


def test_parse_headline_after_lead_in():
    """第一行有客套話開頭"""
    article = parse_article("Sure! HEADLINE: X\n\nSUMMARY: Y\n\nCONTENT:\nZ")

    assert article.title == "X"
    assert article.summary == "Y"
    assert article.body == "Z"


def test_parse_empty_headline_does_not_take_next_label():
    article = parse_article("HEADLINE:\nSUMMARY: Y\n\nCONTENT:\nZ")

    assert article.title == DEFAULT_TITLE
    assert article.summary == "Y"
    assert article.body == "Z"
