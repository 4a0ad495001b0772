"""Brevo transactional email client.

POSTs to ``/v3/smtp/email`` with the ``api-key`` header. 429 responses are
retried after ``Retry-After`` seconds and 5xx/network failures with exponential
backoff starting at one second, up to ``max_retries`` retries. No single wait
exceeds ``max_delay`` seconds.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any

import requests

from .errors import EmailDeliveryError

log = logging.getLogger("okr.email")

BREVO_API_URL = "https://api.brevo.com/v3/smtp/email"


class BrevoEmailClient:
    def __init__(
        self,
        api_key: str | None,
        sender_email: str,
        sender_name: str,
        *,
        max_retries: int = 3,
        timeout: float = 10.0,
        max_delay: float = 10.0,
        http: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key
        self.sender = {"email": sender_email, "name": sender_name}
        self.max_retries = max_retries
        self.timeout = timeout
        self.max_delay = max_delay
        self.http = http or requests.Session()
        self._sleep = sleep

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def send(
        self,
        to_email: str,
        subject: str,
        html: str,
        *,
        to_name: str | None = None,
        tags: list[str] | None = None,
    ) -> str | None:
        """Send one email; return the provider message id.

        Returns None without calling the provider when no API key is configured.
        """
        if not self.configured:
            log.info("Email delivery disabled; dropping '%s' to %s", subject, to_email)
            return None
        recipient: dict[str, str] = {"email": to_email}
        if to_name:
            recipient["name"] = to_name
        payload: dict[str, Any] = {
            "sender": self.sender,
            "to": [recipient],
            "subject": subject,
            "htmlContent": html,
        }
        if tags:
            payload["tags"] = tags
        headers = {"api-key": str(self.api_key), "accept": "application/json", "content-type": "application/json"}

        attempt = 0
        while True:
            try:
                resp = self.http.post(BREVO_API_URL, json=payload, headers=headers, timeout=self.timeout)
            except requests.RequestException as e:
                if attempt >= self.max_retries:
                    raise EmailDeliveryError(f"email provider unreachable: {e}") from e
                self._backoff(attempt, None)
                attempt += 1
                continue
            if resp.status_code < 300:
                try:
                    return (resp.json() or {}).get("messageId")
                except ValueError:
                    return None
            retryable = resp.status_code == 429 or resp.status_code >= 500
            if not retryable or attempt >= self.max_retries:
                log.warning("Brevo rejected email to %s: %s %s", to_email, resp.status_code, resp.text[:200])
                raise EmailDeliveryError(f"email provider returned {resp.status_code}")
            retry_after = resp.headers.get("Retry-After") if resp.status_code == 429 else None
            self._backoff(attempt, retry_after)
            attempt += 1

    def _backoff(self, attempt: int, retry_after: str | None) -> None:
        delay = float(2 ** attempt)
        if retry_after:
            try:
                delay = float(retry_after)
            except ValueError:
                pass
        delay = max(0.0, min(delay, self.max_delay))
        log.info("Retrying email delivery in %.1fs (attempt %d)", delay, attempt + 1)
        self._sleep(delay)


__all__ = ["BrevoEmailClient", "BREVO_API_URL"]
