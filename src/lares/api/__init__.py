"""Management HTTP API for lares.

Built by :func:`lares.api.main.create_app`; served by ``lares server``
alongside the crawl run-loop.
"""
