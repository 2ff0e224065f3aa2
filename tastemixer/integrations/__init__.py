"""Outbound integrations with the catalog API."""

from .request_gateway import RequestGateway, TokenProvider

__all__ = ["RequestGateway", "TokenProvider"]
