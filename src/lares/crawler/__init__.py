"""Crawl engine.

Sub-modules:
- ``fetcher``   — httpx + feedparser fetch-parse stage (``fetch_and_parse``)
- ``pipeline``  — per-feed crawl cycle (``CrawlPipeline``, ``CrawlOutcome``)
- ``scheduler`` — background run-loop (``CrawlScheduler``)
"""
