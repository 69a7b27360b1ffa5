from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Any, Dict, Sequence

from hayguard.domain.events import AlertEvent
from hayguard.domain.models import AlertRecord


def _iso(ts: datetime) -> str:
    return ts.isoformat(timespec="seconds")


def build_alert_webhook_payload(alerts: Sequence[AlertRecord], ev: AlertEvent) -> Dict[str, Any]:
    """
    Build a webhook payload for an alert transition plus fleet alert totals.

    Parameters
    ----------
    alerts
        Live alerts at the time the payload is built.
    ev
        Transition that triggered the webhook.

    Returns
    -------
    dict
        Payload with keys ``"type"``, ``"event"`` and ``"totals"``.
    """
    open_alerts = [a for a in alerts if not a.resolved]
    by_severity = Counter(a.severity.value for a in open_alerts)
    by_type = Counter(a.alert_type.value for a in open_alerts)

    event_payload = {
        "alertId": ev.dedup_key,
        "sensorId": ev.sensor_id,
        "type": ev.alert_type.value,
        "severity": ev.severity.value,
        "transition": ev.transition.value,
        "timestamp": _iso(ev.timestamp),
        "message": ev.message,
        "value": ev.value,
    }

    totals_payload = {
        "alerts_total": len(alerts),
        "alerts_open": len(open_alerts),
        "alerts_resolved": len(alerts) - len(open_alerts),
        "open_by_severity": {k: int(v) for k, v in by_severity.items()},
        "open_by_type": {k: int(v) for k, v in by_type.items()},
        "sensors_affected": len({a.sensor_id for a in open_alerts}),
    }

    return {
        "type": "alert_event",
        "event": event_payload,
        "totals": totals_payload,
    }
