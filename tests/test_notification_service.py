from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from app.core.config import Settings
from app.services.notification_service import Notifier, strip_html


def settings(**overrides):
    values = {
        "SMTP_HOST": "",
        "SMTP_USER": "",
        "SMTP_PASSWORD": "",
        "TWILIO_ACCOUNT_SID": "",
        "TWILIO_AUTH_TOKEN": "",
        "TWILIO_PHONE_NUMBER": "",
    }
    values.update(overrides)
    return Settings(**values)


TWILIO = {"TWILIO_ACCOUNT_SID": "AC123", "TWILIO_AUTH_TOKEN": "secret", "TWILIO_PHONE_NUMBER": "+15550000000"}


def people(email_notifications=True, sms_notifications=True, visitor_email="tunde@mail.test"):
    member = SimpleNamespace(
        full_name="Ada Lovelace",
        email="ada@acme.test",
        phone="+2348010000001",
        email_notifications=email_notifications,
        sms_notifications=sms_notifications,
    )
    visitor = SimpleNamespace(full_name="Tunde Visitor", phone="+2348020000000", email=visitor_email)
    company = SimpleNamespace(name="Acme Ltd", location="Block B")
    return member, visitor, company


def request(status="accepted", **fields):
    values = {
        "status": status,
        "purpose": "meeting",
        "duration": 30,
        "purpose_description": None,
        "response_action": None,
        "response_message": None,
        "scheduled_time": None,
        "exited_at": None,
        "total_duration": None,
    }
    values.update(fields)
    return SimpleNamespace(**values)


def test_strip_html():
    assert strip_html("<p>Hello <b>there</b></p>\n<p>friend</p>") == "Hello there friend"


@pytest.mark.asyncio
async def test_unconfigured_channels_report_failure_without_raising():
    notifier = Notifier(settings=settings())
    assert await notifier.send_email("a@b.test", "Hi", "<p>Hi</p>") == {
        "success": False,
        "message": "Email service not configured",
    }
    assert await notifier.send_sms("+1", "Hi") == {"success": False, "message": "SMS service not configured"}


@pytest.mark.asyncio
async def test_sms_goes_through_twilio_client():
    client = MagicMock()
    client.messages.create.return_value = SimpleNamespace(sid="SM42")
    notifier = Notifier(settings=settings(**TWILIO), sms_client=client)

    result = await notifier.send_sms("+2348020000000", "Your visit was accepted")
    assert result == {"success": True, "messageId": "SM42"}
    client.messages.create.assert_called_once_with(
        body="Your visit was accepted", from_="+15550000000", to="+2348020000000"
    )


@pytest.mark.asyncio
async def test_transport_errors_become_partial_results():
    client = MagicMock()
    client.messages.create.side_effect = RuntimeError("twilio unreachable")
    notifier = Notifier(settings=settings(**TWILIO), sms_client=client)

    member, visitor, company = people()
    results = await notifier.notify_visitor_of_status(visitor, request("declined"), member, company)
    assert results["email"] == {"success": False, "message": "Email service not configured"}
    assert results["sms"] == {"success": False, "error": "twilio unreachable"}


@pytest.mark.asyncio
async def test_member_preferences_pick_channels():
    client = MagicMock()
    client.messages.create.return_value = SimpleNamespace(sid="SM1")
    notifier = Notifier(settings=settings(**TWILIO), sms_client=client)
    member, visitor, company = people(email_notifications=False)

    results = await notifier.notify_member_of_request(member, visitor, request("pending"), company)
    assert set(results) == {"sms"}
    body = client.messages.create.call_args.kwargs["body"]
    assert "Tunde Visitor" in body
    assert "Acme Ltd" in body


@pytest.mark.asyncio
async def test_visitor_without_email_gets_sms_only():
    client = MagicMock()
    client.messages.create.return_value = SimpleNamespace(sid="SM2")
    notifier = Notifier(settings=settings(**TWILIO), sms_client=client)
    member, visitor, company = people(visitor_email=None)

    results = await notifier.notify_visitor_of_status(visitor, request("completed", total_duration=47), member, company)
    assert set(results) == {"sms"}
    assert results["sms"]["success"] is True


@pytest.mark.asyncio
async def test_unknown_status_is_reported():
    notifier = Notifier(settings=settings())
    member, visitor, company = people()
    results = await notifier.notify_visitor_of_status(visitor, request("cancelled"), member, company)
    assert results == {"success": False, "message": "Unknown status"}


@pytest.mark.asyncio
async def test_email_is_sent_over_smtp(monkeypatch):
    sent = []
    notifier = Notifier(settings=settings(SMTP_HOST="smtp.test", SMTP_USER="desk@acme.test", SMTP_PASSWORD="pw"))
    monkeypatch.setattr(notifier, "_deliver_email", lambda message: sent.append(message))

    result = await notifier.send_manual("email", "guest@mail.test", "Badge <ready>")
    assert result["email"]["success"] is True
    message = sent[0]
    assert message["To"] == "guest@mail.test"
    assert "Badge &lt;ready&gt;" in message.get_body(("html",)).get_content()
