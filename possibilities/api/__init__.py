"""HTTP surface for the possibilities engine (FastAPI, REST + SSE)."""

from possibilities.api.app import create_app

__all__ = ["create_app"]
