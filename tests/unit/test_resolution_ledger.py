"""
Unit tests for hayguard.core.state.resolution_ledger.ResolutionLedger.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from hayguard.core.state.resolution_ledger import ResolutionLedger

T0 = datetime(2026, 3, 1, 12, 0, 0)


def test_mark_resolved_records_entry() -> None:
    """Marking stores resolved=True with the resolution time."""
    ledger = ResolutionLedger()
    entry = ledger.mark_resolved("SENS-001|battery|warning|20", T0)

    assert entry.resolved and entry.resolved_at == T0
    assert ledger.get("SENS-001|battery|warning|20") == entry
    assert ledger.get("other") is None


def test_entries_expire_after_ttl_on_write() -> None:
    """Writes prune entries resolved 7 days (or more) before the write."""
    ledger = ResolutionLedger(ttl_days=7)
    ledger.mark_resolved("old", T0)
    ledger.mark_resolved("recent", T0 + timedelta(days=1))

    ledger.mark_resolved("new", T0 + timedelta(days=7))

    assert ledger.get("old") is None
    assert ledger.get("recent") is not None
    assert ledger.get("new") is not None


def test_prune_returns_removed_count() -> None:
    ledger = ResolutionLedger(ttl_days=7)
    ledger.mark_resolved("a", T0)
    ledger.mark_resolved("b", T0)
    assert ledger.prune(T0 + timedelta(days=6)) == 0
    assert ledger.prune(T0 + timedelta(days=8)) == 2


def test_record_roundtrip_skips_malformed_entries() -> None:
    """to_record/load_record preserve entries; entries without resolvedAt are ignored."""
    ledger = ResolutionLedger()
    ledger.mark_resolved("k", T0)
    record = ledger.to_record()
    assert record == {"k": {"resolved": True, "resolvedAt": T0.isoformat()}}

    restored = ResolutionLedger()
    restored.load_record({**record, "broken": {"resolved": True}})
    assert restored.entries == ledger.entries


def test_forget_sensor_drops_only_that_sensor() -> None:
    ledger = ResolutionLedger()
    ledger.mark_resolved("SENS-004|moisture|critical|-15", T0)
    ledger.mark_resolved("SENS-004|battery|warning|20", T0)
    ledger.mark_resolved("SENS-040|battery|warning|20", T0)

    assert ledger.forget_sensor("SENS-004") == 2
    assert list(ledger.entries) == ["SENS-040|battery|warning|20"]
