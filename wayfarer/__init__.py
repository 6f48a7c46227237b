"""Wayfarer: travel itinerary planning API."""

__version__ = "0.1.0"
