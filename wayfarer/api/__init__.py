"""Wayfarer API routes."""

from .routes import ApiError, router, upstream_to_api_error

__all__ = ["ApiError", "router", "upstream_to_api_error"]
