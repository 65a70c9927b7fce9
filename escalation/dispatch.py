"""
Alert dispatch collaborators.

The collaborator persists the alert and notifies contacts. Its contract:
{user_id, org_id, latitude, longitude, source, message} -> id, or a failure.
A failure is returned, never swallowed: contacts may not have been notified.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from severity.models import EmergencyAlert

logger = logging.getLogger("severity_api.escalation.dispatch")

ALERT_SOURCE = "panic"
CHAT_TRIGGER_MESSAGE = "AI Safety Assistant emergency trigger (chat)"
VOICE_TRIGGER_MESSAGE = "AI Safety Assistant emergency trigger (voice)"


@dataclass(frozen=True)
class DispatchResult:
    ok: bool
    alert_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self):
        return {"ok": self.ok, "alert_id": self.alert_id, "error": self.error}


def build_dispatch_payload(alert: EmergencyAlert, user_id: str, org_id: str, message: str) -> dict:
    return {
        "user_id": user_id,
        "org_id": org_id,
        "latitude": alert.latitude,
        "longitude": alert.longitude,
        "source": ALERT_SOURCE,
        "message": message,
    }


class AlertDispatcher(Protocol):
    def dispatch(self, alert: EmergencyAlert, user_id: str, org_id: str, message: str) -> DispatchResult:
        ...


class HttpAlertDispatcher:
    """POSTs the alert to DISPATCH_URL and expects {"id": "..."} back."""

    def __init__(self, url: str, timeout: float = 10.0, client: Optional[httpx.Client] = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    def dispatch(self, alert: EmergencyAlert, user_id: str, org_id: str, message: str) -> DispatchResult:
        payload = build_dispatch_payload(alert, user_id, org_id, message)
        try:
            if self._client is not None:
                r = self._client.post(self.url, json=payload, timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    r = client.post(self.url, json=payload, headers={"Content-Type": "application/json"})
            r.raise_for_status()
            data = r.json()
        except httpx.HTTPStatusError as e:
            logger.error("dispatch rejected status=%s user_id=%s", e.response.status_code, user_id)
            return DispatchResult(ok=False, error=f"dispatch returned status {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.error("dispatch failed user_id=%s err=%s", user_id, e)
            return DispatchResult(ok=False, error=f"dispatch transport error: {type(e).__name__}")
        except ValueError:
            logger.error("dispatch response is not JSON user_id=%s", user_id)
            return DispatchResult(ok=False, error="dispatch response is not JSON")

        alert_id = data.get("id") if isinstance(data, dict) else None
        if not alert_id:
            logger.error("dispatch response missing id user_id=%s", user_id)
            return DispatchResult(ok=False, error="dispatch response missing id")
        logger.info("dispatch ok alert_id=%s user_id=%s org_id=%s", alert_id, user_id, org_id)
        return DispatchResult(ok=True, alert_id=str(alert_id))


class InMemoryAlertDispatcher:
    """Development dispatcher: records payloads, always succeeds."""

    def __init__(self):
        self.records: list[dict] = []

    def dispatch(self, alert: EmergencyAlert, user_id: str, org_id: str, message: str) -> DispatchResult:
        alert_id = str(uuid.uuid4())
        record = build_dispatch_payload(alert, user_id, org_id, message)
        record["id"] = alert_id
        self.records.append(record)
        logger.info("dispatch recorded in memory alert_id=%s", alert_id)
        return DispatchResult(ok=True, alert_id=alert_id)
