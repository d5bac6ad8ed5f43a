"""Operator HTTP API."""

from rankzone.api.operator import create_app

__all__ = ["create_app"]
