"""
Channel senders used by the notification dispatcher.

- EmailSender: HTTP mail API (Bearer key) via httpx
- PushSender: FCM multicast via httpx
- SmsSender: Twilio (blocking client run in a worker thread)
- InAppSender: no transport; the stored notification record is the delivery

Unconfigured providers report a failed outcome instead of raising, so a
missing credential in dev only fails its own channel.
"""
import asyncio
import logging
import uuid
from typing import Dict, List, Optional

import httpx
from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioClient

from config.settings import settings
from core.errors import DependencyError
from models.notification import Channel, MulticastOutcome, RenderedContent, SendOutcome

logger = logging.getLogger(__name__)


def format_phone_number(phone: str) -> str:
    """Normalize local Ugandan numbers to E.164 (+256...)."""
    digits = "".join(ch for ch in phone if ch.isdigit() or ch == "+")
    if digits.startswith("+"):
        return digits
    if digits.startswith("256"):
        return "+" + digits
    if digits.startswith("0"):
        return "+256" + digits[1:]
    return "+256" + digits


class EmailSender:
    def __init__(self, client: httpx.AsyncClient, api_url: Optional[str] = None,
                 api_key: Optional[str] = None, sender: Optional[str] = None):
        self.client = client
        self.api_url = api_url if api_url is not None else settings.EMAIL_API_URL
        self.api_key = api_key if api_key is not None else settings.EMAIL_API_KEY
        self.sender = sender or settings.EMAIL_FROM

    async def send(self, recipient: str, content: RenderedContent) -> SendOutcome:
        if not self.api_url:
            return SendOutcome(success=False, error="Email service not configured")
        payload = {
            "from": self.sender,
            "to": recipient,
            "subject": content.subject or content.title,
            "text": content.body,
            "html": content.html,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        try:
            resp = await self.client.post(self.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise DependencyError(f"Email provider unreachable: {e}") from e
        if not (200 <= resp.status_code < 300):
            logger.warning("Email API returned %s for %s", resp.status_code, recipient)
            return SendOutcome(success=False, error=f"Email API returned {resp.status_code}")
        message_id = None
        if resp.content:
            try:
                message_id = resp.json().get("id")
            except ValueError:
                message_id = None
        return SendOutcome(success=True, message_id=message_id)


class PushSender:
    def __init__(self, client: httpx.AsyncClient, endpoint: Optional[str] = None, server_key: Optional[str] = None):
        self.client = client
        self.endpoint = endpoint or settings.FCM_ENDPOINT
        self.server_key = server_key if server_key is not None else settings.FCM_SERVER_KEY

    async def send_multicast(self, tokens: List[str], content: RenderedContent) -> MulticastOutcome:
        """One provider call for all device tokens; counts come back per token."""
        if not self.server_key:
            logger.info("Push not configured; %d token(s) skipped", len(tokens))
            return MulticastOutcome(success_count=0, failure_count=len(tokens))
        payload = {
            "registration_ids": tokens,
            "notification": {"title": content.title, "body": content.body},
            "data": {k: str(v) for k, v in content.data.items()},
        }
        try:
            resp = await self.client.post(
                self.endpoint,
                json=payload,
                headers={"Authorization": f"key={self.server_key}"},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise DependencyError(f"Push provider error: {e}") from e

        body = resp.json()
        results = body.get("results") or []
        message_ids = [r["message_id"] for r in results if r.get("message_id")]
        return MulticastOutcome(
            success_count=int(body.get("success", len(message_ids))),
            failure_count=int(body.get("failure", len(tokens) - len(message_ids))),
            message_ids=message_ids,
        )


class SmsSender:
    def __init__(self, account_sid: Optional[str] = None, auth_token: Optional[str] = None,
                 from_number: Optional[str] = None):
        sid = account_sid if account_sid is not None else settings.TWILIO_ACCOUNT_SID
        token = auth_token if auth_token is not None else settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number if from_number is not None else settings.TWILIO_FROM
        self.client = TwilioClient(sid, token) if sid and token and self.from_number else None

    async def send(self, recipient: str, content: RenderedContent) -> SendOutcome:
        if self.client is None:
            return SendOutcome(success=False, error="SMS service not configured")
        to = format_phone_number(recipient)
        try:
            message = await asyncio.to_thread(
                self.client.messages.create, to=to, from_=self.from_number, body=content.body
            )
        except TwilioRestException as e:
            logger.error("[SMS][Twilio FAILED] To %s: %s", to, e)
            return SendOutcome(success=False, error=e.msg or str(e))
        logger.info("[SMS][Twilio] Sent to %s sid=%s", to, message.sid)
        return SendOutcome(success=True, message_id=message.sid)


class InAppSender:
    async def send(self, recipient: str, content: RenderedContent) -> SendOutcome:
        return SendOutcome(success=True, message_id=str(uuid.uuid4()))


def build_default_senders(http_client: httpx.AsyncClient) -> Dict[Channel, object]:
    return {
        Channel.EMAIL: EmailSender(http_client),
        Channel.PUSH: PushSender(http_client),
        Channel.SMS: SmsSender(),
        Channel.IN_APP: InAppSender(),
    }
