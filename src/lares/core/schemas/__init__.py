"""Pydantic request/response schemas for the management API."""
