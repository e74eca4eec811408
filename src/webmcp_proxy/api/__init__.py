"""FastAPI transport for the gateway."""

from .main import create_app

__all__ = ["create_app"]
