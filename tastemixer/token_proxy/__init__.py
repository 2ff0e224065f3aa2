"""Trusted token intermediary holding the client secret."""

from .app import create_token_proxy_app

__all__ = ["create_token_proxy_app"]
