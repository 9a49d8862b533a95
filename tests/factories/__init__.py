"""Test data builders for lares tests.

Usage::

    from tests.factories.feeds import rss_document, rss_item, numbered_items
"""
