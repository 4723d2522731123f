"""HTTP surface for Tessera."""

from tessera.api.app import create_app

__all__ = ["create_app"]
