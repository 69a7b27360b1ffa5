from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import requests

from hayguard.notification.base import NotificationEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookConfig:
    """
    Webhook endpoint settings.

    Parameters
    ----------
    url
        Receiver URL.
    timeout_s
        Per-request timeout in seconds.
    verify_tls
        Verify the receiver's certificate.
    auth_header
        Full ``Authorization`` value, e.g. ``"Bearer <token>"``.
    """

    url: str
    timeout_s: float = 3.0
    verify_tls: bool = True
    auth_header: Optional[str] = None


class WebhookNotifier:
    """
    POST alert notifications to an HTTP receiver as JSON.

    One ``requests.Session`` is kept for the notifier's lifetime so
    consecutive deliveries reuse the connection. Routing metadata travels in
    ``X-HayGuard-*`` headers so receivers can filter without parsing the body.
    Non-2xx responses raise, which makes the worker thread retry.
    """

    def __init__(self, cfg: WebhookConfig, session: Optional[requests.Session] = None):
        self._cfg = cfg
        self._session = session or requests.Session()
        self._session.verify = cfg.verify_tls

    def _headers(self, event: NotificationEvent) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "X-HayGuard-Event": event.type}
        if event.severity:
            headers["X-HayGuard-Severity"] = event.severity
        if self._cfg.auth_header:
            headers["Authorization"] = self._cfg.auth_header
        return headers

    def notify(self, event: NotificationEvent) -> None:
        """
        Deliver ``event.payload``.

        Raises
        ------
        requests.RequestException
            On connection errors, timeouts and non-2xx responses.
        """
        resp = self._session.post(
            self._cfg.url,
            json=event.payload,
            headers=self._headers(event),
            timeout=self._cfg.timeout_s,
        )
        resp.raise_for_status()
        logger.debug("webhook %s -> %s (%d)", event.source, self._cfg.url, resp.status_code)

    def close(self) -> None:
        self._session.close()
