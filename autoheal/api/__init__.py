"""
HTTP API exports.
"""

from autoheal.api.server import create_app

__all__ = ["create_app"]
