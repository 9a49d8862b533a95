"""lares: a minimal RSS/Atom feed crawler with a management CLI and API."""

__version__ = "0.3.0"
