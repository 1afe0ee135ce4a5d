from __future__ import annotations
import os
from typing import Optional

import requests

from sdk.notifier import DeliveryResult


class WebhookNotifier:
    """POST ``{"text": message}`` to a chat webhook (Slack-compatible).

    The ``requests.Session`` is shared by every job thread so connections are
    pooled; pass one in to reuse it elsewhere or to substitute it in tests.
    """
    def __init__(
        self,
        url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        token: Optional[str] = None,
    ):
        self.url = url or os.getenv("SHOWREC_WEBHOOK_URL", "")
        self.timeout = timeout
        self.token = token if token is not None else os.getenv("SHOWREC_WEBHOOK_TOKEN", "")
        self._owns_session = session is None
        self._session = session or requests.Session()

    def send(self, message: str) -> DeliveryResult:
        if not self.url:
            return DeliveryResult(ok=False, error="no webhook url configured")
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            r = self._session.post(
                self.url,
                json={"text": message},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            return DeliveryResult(ok=False, error=str(e))
        if 200 <= r.status_code < 300:
            return DeliveryResult(ok=True, status_code=r.status_code)
        return DeliveryResult(ok=False, status_code=r.status_code, error=f"HTTP {r.status_code}")

    def close(self) -> None:
        if self._owns_session:
            self._session.close()
