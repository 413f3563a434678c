"""Unit tests for the selector-driven content extractor.

Uses synthetic HTML fixtures representing Spanish-language news pages and
edge cases (missing title, missing body, lazy images, relative URLs).
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from news_extraction.core.exceptions import NoContentFoundError, NoTitleFoundError
from news_extraction.core.schemas import SelectorSet
from news_extraction.scraper.content_extractor import (
    extract_article,
    extract_images,
    extract_text,
    extract_text_list,
    parse_date,
    parse_html,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

_ARTICLE_HTML = """
<!DOCTYPE html>
<html lang="es">
<head><title>Noticia | Diario</title></head>
<body>
  <header><nav>Portada</nav></header>
  <article>
    <h1 class="headline">  Reforma   energética aprobada en el Congreso </h1>
    <p class="standfirst">Resumen de la noticia.</p>
    <span class="byline">Ana Pérez</span>
    <time datetime="2024-03-05T10:30:00Z">5 de marzo</time>
    <div class="body">
      <p>El Congreso aprobó la reforma energética tras un largo debate.</p>
      <p>La votación terminó con mayoría amplia.</p>
    </div>
    <figure><img src="/img/foto.jpg"></figure>
    <figure><img data-src="https://cdn.diario.mx/lazy.jpg" src="data:image/gif;base64,AAA"></figure>
    <img class="logo" src="/static/logo.png">
    <ul class="tags"><li>energía</li><li>congreso</li><li>energía</li></ul>
    <a class="section">Política</a>
  </article>
  <script>var tracking = 1;</script>
</body>
</html>
"""

_SELECTORS = SelectorSet(
    title="h1.headline",
    content=".body",
    images="figure img, img.logo",
    published_at="time",
    author=".byline",
    categories="a.section",
    excerpt=".standfirst",
    tags=".tags li",
)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestExtractText:
    def test_first_matching_selector_wins(self) -> None:
        soup = parse_html(_ARTICLE_HTML)
        assert extract_text(soup, ["h2.missing", "h1.headline"]).startswith("Reforma")

    def test_whitespace_is_collapsed(self) -> None:
        soup = parse_html(_ARTICLE_HTML)
        assert extract_text(soup, "h1") == "Reforma energética aprobada en el Congreso"

    def test_no_match_returns_empty(self) -> None:
        soup = parse_html(_ARTICLE_HTML)
        assert extract_text(soup, ".nothing") == ""

    def test_scripts_are_removed(self) -> None:
        soup = parse_html(_ARTICLE_HTML)
        assert "tracking" not in extract_text(soup, "body")


class TestExtractTextList:
    def test_deduplicated_in_order(self) -> None:
        soup = parse_html(_ARTICLE_HTML)
        assert extract_text_list(soup, ".tags li") == ["energía", "congreso"]


class TestExtractImages:
    def test_resolves_relative_and_lazy_sources(self) -> None:
        soup = parse_html(_ARTICLE_HTML)
        images = extract_images(soup, "figure img", base_url="https://diario.mx/nota/1")
        assert images == [
            "https://diario.mx/img/foto.jpg",
            "https://cdn.diario.mx/lazy.jpg",
        ]

    def test_logos_are_excluded(self) -> None:
        soup = parse_html(_ARTICLE_HTML)
        assert extract_images(soup, "img.logo", base_url="https://diario.mx/") == []


class TestParseDate:
    def test_iso_with_z(self) -> None:
        assert parse_date("2024-03-05T10:30:00Z") == datetime(
            2024, 3, 5, 10, 30, tzinfo=timezone.utc
        )

    def test_rfc2822(self) -> None:
        parsed = parse_date("Tue, 05 Mar 2024 10:30:00 +0000")
        assert parsed == datetime(2024, 3, 5, 10, 30, tzinfo=timezone.utc)

    def test_garbage_returns_none(self) -> None:
        assert parse_date("ayer por la tarde") is None


class TestExtractArticle:
    def test_full_article(self) -> None:
        article = extract_article(_ARTICLE_HTML, _SELECTORS, base_url="https://diario.mx/nota/1")

        assert article.title == "Reforma energética aprobada en el Congreso"
        assert "largo debate" in article.content
        assert article.author == "Ana Pérez"
        assert article.excerpt == "Resumen de la noticia."
        assert article.categories == ["Política"]
        assert article.tags == ["energía", "congreso"]
        assert article.published_at == datetime(2024, 3, 5, 10, 30, tzinfo=timezone.utc)
        assert "https://diario.mx/img/foto.jpg" in article.images

    def test_missing_title_raises(self) -> None:
        html = '<div class="body">Texto suficiente.</div>'
        with pytest.raises(NoTitleFoundError) as excinfo:
            extract_article(html, SelectorSet(title="h1", content=".body"), base_url="https://x.mx/")
        assert excinfo.value.field == "title"

    def test_empty_title_element_raises(self) -> None:
        html = '<h1>   </h1><div class="body">Texto suficiente.</div>'
        with pytest.raises(NoTitleFoundError):
            extract_article(html, SelectorSet(title="h1", content=".body"), base_url="https://x.mx/")

    def test_missing_content_raises(self) -> None:
        with pytest.raises(NoContentFoundError):
            extract_article(
                "<h1>Titular</h1>",
                SelectorSet(title="h1", content=".body"),
                base_url="https://x.mx/",
            )

    def test_optional_fields_default_empty(self) -> None:
        article = extract_article(
            '<h1>Hello</h1><div class="body">World</div>',
            SelectorSet(title="h1", content=".body"),
            base_url="https://example.com/a",
        )
        assert article.images == []
        assert article.author is None
        assert article.tags == []
