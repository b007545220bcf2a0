"""Core infrastructure: configuration, caching, HTTP client and logging."""
