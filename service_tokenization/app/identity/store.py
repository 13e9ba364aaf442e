"""
Runtime identity store for the gateway.

Holds the home organization and the upstream base addresses. Snapshots are
immutable; ``merge`` builds a new snapshot and swaps the reference under a
lock, so ``get`` never blocks and never sees a half-applied update.
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional
import threading

from shared.logging import get_logger


@dataclass(frozen=True)
class IdentityConfiguration:
    """Point-in-time view of the gateway identity."""

    registry_host: str
    driver_host: str
    home_org: Optional[str] = None

    @property
    def has_home_org(self) -> bool:
        return bool(self.home_org)


_FIELD_NAMES = frozenset(f.name for f in fields(IdentityConfiguration))


class IdentityStore:
    """Process-wide identity state with atomic read and merge."""

    def __init__(self, initial: IdentityConfiguration):
        self._snapshot = initial
        self._write_lock = threading.Lock()
        self.logger = get_logger("tokenization.identity_store")

    def get(self) -> IdentityConfiguration:
        """Return the current snapshot."""
        return self._snapshot

    def merge(self, partial: Mapping[str, Any]) -> IdentityConfiguration:
        """Apply a partial update atomically and return the new snapshot."""
        unknown = set(partial) - _FIELD_NAMES
        if unknown:
            raise KeyError(f"Unknown identity fields: {', '.join(sorted(unknown))}")

        with self._write_lock:
            updated = replace(self._snapshot, **dict(partial))
            self._snapshot = updated

        self.logger.info("Identity updated", fields=sorted(partial))
        return updated

    def as_dict(self) -> Dict[str, Any]:
        snapshot = self._snapshot
        return {
            "homeOrg": snapshot.home_org,
            "registryHost": snapshot.registry_host,
            "driverHost": snapshot.driver_host,
        }
