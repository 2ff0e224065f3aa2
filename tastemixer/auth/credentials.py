"""Credential record persisted between sessions."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["CredentialRecord"]


@dataclass(slots=True, frozen=True)
class CredentialRecord:
    """Access/refresh token pair with its absolute expiry.

    ``expires_at_ms`` is fixed when the record is issued and never recomputed.
    """

    access_token: str
    refresh_token: str | None
    expires_at_ms: int

    @classmethod
    def issued(
        cls,
        *,
        access_token: str,
        refresh_token: str | None,
        expires_in: int | float,
        issued_at_ms: int,
    ) -> CredentialRecord:
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at_ms=int(issued_at_ms) + int(float(expires_in) * 1000),
        )

    def expires_within(self, margin_ms: int, now_ms: int) -> bool:
        """Return ``True`` when the token expires less than ``margin_ms`` from now."""

        return self.expires_at_ms - int(now_ms) <= int(margin_ms)

    def is_expired(self, now_ms: int) -> bool:
        return self.expires_at_ms <= int(now_ms)
