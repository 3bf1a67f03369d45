"""Derive stable, secret-salted tenant directory prefixes."""

from __future__ import annotations

import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)


def hash_tenant(tenant_id: int | str, secret: str) -> str:
    """Keyed SHA256 of the tenant id, hex encoded."""
    return hmac.new(
        secret.encode("utf-8"),
        str(tenant_id).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class TenantHasher:
    """Turns tenant ids into the prefix used for tenant directories.

    With hashing disabled the raw id is used, which makes tenant directories
    guessable from the outside.
    """

    def __init__(self, secret: str = "", enabled: bool = True) -> None:
        self._secret = secret
        self._enabled = enabled
        if enabled and not secret:
            logger.warning(
                "No cache secret configured; tenant directory names are hashed "
                "with an empty key. Set FLATCACHE_SECRET to harden the cache layout."
            )

    @property
    def degraded(self) -> bool:
        """True when hashing runs without a secret."""
        return self._enabled and not self._secret

    def prefix(self, tenant_id: int) -> str:
        if not self._enabled:
            return str(tenant_id)
        return hash_tenant(tenant_id, self._secret)
