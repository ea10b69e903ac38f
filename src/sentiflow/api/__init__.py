"""HTTP interface for starting workflow executions."""

from .server import create_app

__all__ = ["create_app"]
