"""Core services: configuration-independent data model, store and management logic."""
