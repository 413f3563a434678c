"""Selector-driven article extraction.

Fetches a news article and pulls structured fields out of it with the CSS
selectors registered for its domain.

Sub-modules:
- ``config``             — constants and tuning parameters
- ``http_fetcher``       — async httpx-based page fetcher with robots.txt support
- ``playwright_fetcher`` — headless Chromium renderer for JS-heavy pages
- ``content_extractor``  — BeautifulSoup selector evaluation (text, lists, images, dates)
- ``quality``            — completeness scoring, warnings and error classification
- ``cache``              — Redis-backed extraction result cache
- ``keywords``           — keyword frequency analysis
- ``extractor``          — ``SelectorExtractor``, composing all of the above
"""
