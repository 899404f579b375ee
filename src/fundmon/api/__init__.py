"""Read-only HTTP API over stored fund observations."""

from fundmon.api.app import create_api_app

__all__ = ["create_api_app"]
