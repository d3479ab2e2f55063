"""
Interview Dispatch: MailerSend Output Layer
Sends one interview invitation per round unit.
Quota exhaustion (HTTP 429) is reported separately from other failures
because it is what engages backpressure for the rest of the batch.
"""
import json
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from config.settings import config
from outputs.formatters import format_invitation_html, format_invitation_subject, format_invitation_text

logger = logging.getLogger("dispatch.mailersend")


@dataclass(frozen=True)
class InvitationEmail:
    """Template fields for one invitation."""
    to: str
    candidate_name: str
    company: str
    interviewer: str
    round_name: str
    round_link: str
    idempotency_key: str


@dataclass(frozen=True)
class SendResult:
    success: bool
    quota_exhausted: bool = False
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "SendResult":
        return cls(success=True)

    @classmethod
    def quota(cls) -> "SendResult":
        return cls(success=False, quota_exhausted=True, error="quota_exhausted")

    @classmethod
    def failure(cls, message: str) -> "SendResult":
        return cls(success=False, error=message)


class MailerSendNotifier:
    """
    MailerSend delivery engine.
    send() never raises; every outcome is a SendResult.
    """

    def __init__(self, api_key: str = None, from_email: str = None, from_name: str = None,
                 http_client: httpx.Client = None):
        self._api_key = api_key or config.mailersend.api_key
        if not self._api_key:
            logger.warning("MAILERSEND_API_KEY not set - invitations cannot be sent")
        self.from_email = from_email or config.mailersend.from_email
        self.from_name = from_name or config.mailersend.from_name

        self._client = http_client or httpx.Client(
            base_url=config.mailersend.base_url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "X-Requested-With": "XMLHttpRequest",
            },
            timeout=config.mailersend.timeout,
        )

    # -------------------------------------------------------
    # Public API
    # -------------------------------------------------------

    def send(self, email: InvitationEmail) -> SendResult:
        """
        Send an invitation.
        Returns SendResult.ok() on 200/202, SendResult.quota() on 429,
        SendResult.failure(message) for anything else.
        """
        payload = {
            "from": {"email": self.from_email, "name": self.from_name},
            "to": [{"email": email.to, "name": email.candidate_name}],
            "subject": format_invitation_subject(email),
            "text": format_invitation_text(email),
            "html": format_invitation_html(email),
        }
        logger.debug(f"Sending {email.round_name} invitation to {email.to} (key {email.idempotency_key[:12]})")

        try:
            resp = self._client.post("/email", json=payload)
        except httpx.HTTPError as e:
            return SendResult.failure(f"Network error: {e}")

        if resp.status_code in (200, 202):
            return SendResult.ok()

        if resp.status_code == 429:
            logger.warning("MailerSend 429 - sending quota exhausted")
            return SendResult.quota()

        return SendResult.failure(f"MailerSend error ({resp.status_code}): {self._error_message(resp)}")

    def check_connection(self) -> bool:
        """True if the API token is accepted."""
        try:
            resp = self._client.get("/token")
            return resp.is_success
        except httpx.HTTPError as e:
            logger.warning(f"MailerSend connection check failed: {e}")
            return False

    # -------------------------------------------------------
    # Internal
    # -------------------------------------------------------

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            data = resp.json()
        except ValueError:
            return resp.text[:200]
        if not isinstance(data, dict):
            return str(data)
        return data.get("message") or json.dumps(data.get("errors") or {})

    def close(self):
        self._client.close()
