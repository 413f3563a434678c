"""Discovery of candidate article URLs in inbound social-media posts."""
