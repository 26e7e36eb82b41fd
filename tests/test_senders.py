import json

import httpx
import pytest

from core.errors import DependencyError
from models.notification import RenderedContent
from tools.senders import EmailSender, InAppSender, PushSender, SmsSender, format_phone_number

CONTENT = RenderedContent(title="Hello", body="World", subject="Subj", html="<p>World</p>", data={"k": "v"})


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0772123456", "+256772123456"),
        ("256772123456", "+256772123456"),
        ("+256 772 123 456", "+256772123456"),
        ("772123456", "+256772123456"),
    ],
)
def test_format_phone_number(raw, expected):
    assert format_phone_number(raw) == expected


@pytest.mark.asyncio
async def test_email_sender_posts_to_api():
    seen = {}

    def handler(request: httpx.Request):
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(202, json={"id": "mail-42"})

    async with _client(handler) as client:
        sender = EmailSender(client, api_url="https://mail.test/send", api_key="k", sender="from@test")
        outcome = await sender.send("to@test", CONTENT)

    assert outcome.success is True
    assert outcome.message_id == "mail-42"
    assert seen["auth"] == "Bearer k"
    assert seen["body"]["subject"] == "Subj"
    assert seen["body"]["to"] == "to@test"


@pytest.mark.asyncio
async def test_email_sender_reports_non_2xx():
    async with _client(lambda request: httpx.Response(500)) as client:
        outcome = await EmailSender(client, api_url="https://mail.test/send", api_key="k").send("to@test", CONTENT)
    assert outcome.success is False
    assert "500" in outcome.error


@pytest.mark.asyncio
async def test_email_sender_unreachable_raises_dependency_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(DependencyError):
            await EmailSender(client, api_url="https://mail.test/send", api_key="k").send("to@test", CONTENT)


@pytest.mark.asyncio
async def test_email_sender_not_configured():
    async with _client(lambda request: httpx.Response(200)) as client:
        outcome = await EmailSender(client, api_url="", api_key="").send("to@test", CONTENT)
    assert outcome.success is False
    assert outcome.error == "Email service not configured"


@pytest.mark.asyncio
async def test_push_sender_multicast_counts():
    def handler(request: httpx.Request):
        assert request.headers["Authorization"] == "key=server-key"
        assert json.loads(request.content)["registration_ids"] == ["a", "b"]
        return httpx.Response(200, json={
            "success": 1, "failure": 1,
            "results": [{"message_id": "m1"}, {"error": "NotRegistered"}],
        })

    async with _client(handler) as client:
        batch = await PushSender(client, endpoint="https://push.test", server_key="server-key").send_multicast(
            ["a", "b"], CONTENT
        )
    assert (batch.success_count, batch.failure_count, batch.message_ids) == (1, 1, ["m1"])


@pytest.mark.asyncio
async def test_sms_sender_not_configured():
    outcome = await SmsSender(account_sid="", auth_token="", from_number="").send("0772123456", CONTENT)
    assert outcome.success is False
    assert outcome.error == "SMS service not configured"


@pytest.mark.asyncio
async def test_in_app_sender_always_succeeds():
    outcome = await InAppSender().send("u1", CONTENT)
    assert outcome.success is True
    assert outcome.message_id
