"""HTTP surface over the engine."""

from cadence.api.app import create_app

__all__ = ["create_app"]
