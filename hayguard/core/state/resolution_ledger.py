from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Resolution:
    """
    Ledger entry for one dedup key.

    Parameters
    ----------
    resolved
        Whether the alert was marked resolved.
    resolved_at
        When it was marked resolved.
    """

    resolved: bool
    resolved_at: datetime


@dataclass
class ResolutionLedger:
    """
    Resolution status per alert dedup key.

    The ledger is the only alert state that survives restarts. Entries expire
    ``ttl_days`` after ``resolved_at``; :meth:`prune` runs before every write.

    Notes
    -----
    - This store is not thread-safe. Synchronization and persistence are
      handled by the enclosing ``TelemetryEngine``.
    - Marking a key that is already present overwrites the previous entry.
    """

    ttl_days: int = 7
    entries: Dict[str, Resolution] = field(default_factory=dict)

    def get(self, dedup_key: str) -> Optional[Resolution]:
        return self.entries.get(dedup_key)

    def mark_resolved(self, dedup_key: str, now: datetime) -> Resolution:
        """
        Record ``dedup_key`` as resolved at ``now`` and prune expired entries.

        Parameters
        ----------
        dedup_key
            Key of the alert being resolved.
        now
            Resolution time, also the reference for pruning.
        """
        entry = Resolution(resolved=True, resolved_at=now)
        self.entries[dedup_key] = entry
        self.prune(now)
        return entry

    def prune(self, now: datetime) -> int:
        """
        Remove entries whose ``resolved_at`` is older than ``ttl_days``.

        Returns
        -------
        int
            Number of entries removed.
        """
        cutoff = now - timedelta(days=self.ttl_days)
        expired = [k for k, e in self.entries.items() if e.resolved_at <= cutoff]
        for k in expired:
            del self.entries[k]
        return len(expired)

    def to_record(self) -> Dict[str, Any]:
        return {
            k: {"resolved": e.resolved, "resolvedAt": e.resolved_at.isoformat()}
            for k, e in self.entries.items()
        }

    def load_record(self, obj: Dict[str, Any]) -> None:
        self.entries = {
            k: Resolution(resolved=bool(v.get("resolved", False)), resolved_at=datetime.fromisoformat(v["resolvedAt"]))
            for k, v in obj.items()
            if v.get("resolvedAt")
        }

    def forget_sensor(self, sensor_id: str) -> int:
        """Drop every entry of ``sensor_id``; returns how many were removed."""
        prefix = f"{sensor_id}|"
        stale = [k for k in self.entries if k.startswith(prefix)]
        for k in stale:
            del self.entries[k]
        return len(stale)
