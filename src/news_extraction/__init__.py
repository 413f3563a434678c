"""News extraction pipeline.

Discovers article URLs shared in social-media posts and extracts structured
article content from third-party news sites using per-domain selector
configurations, under shared rate limiting, caching and retry policies.
"""

__version__ = "0.1.0"
