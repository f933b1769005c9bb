import asyncio
import dataclasses
from datetime import datetime

import aiosmtplib
import pytest

import notifications
from errors import DeliveryError
from notifications import ADMIN_TEMPLATE, VISITOR_TEMPLATE, Notifier, render_template
from schemas import Message


def _message(**overrides):
    fields = {
        "id": 7,
        "name": "Ada",
        "email": "ada@lovelace.dev",
        "message": "Loved the <b>projects</b> page",
        "createdAt": datetime(2026, 3, 1, 12, 0),
    }
    fields.update(overrides)
    return Message(**fields)


class SendRecorder:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def __call__(self, message, **kwargs):
        self.calls.append((message, kwargs))
        if self.fail:
            raise aiosmtplib.SMTPConnectError("relay down")


def test_render_fills_every_placeholder_in_both_templates():
    values = {"name": "Ada", "email": "ada@lovelace.dev", "message": "<script>x</script>"}
    for template in notifications._BUILTIN_TEMPLATES.values():
        out = render_template(template, values)
        assert "{{" not in out
        assert "Ada" in out
        assert "ada@lovelace.dev" in out
        assert "&lt;script&gt;" in out
        assert "<script>" not in out


def test_shipped_templates_use_all_placeholders():
    from config import BASE_DIR

    for name in (ADMIN_TEMPLATE, VISITOR_TEMPLATE):
        text = (BASE_DIR / "email-templates" / name).read_text()
        for placeholder in ("{{name}}", "{{email}}", "{{message}}"):
            assert placeholder in text


def test_notify_contact_sends_admin_notice_and_acknowledgment(settings, monkeypatch):
    recorder = SendRecorder()
    monkeypatch.setattr(notifications.aiosmtplib, "send", recorder)

    asyncio.run(Notifier(settings).notify_contact(_message()))

    (admin, admin_kw), (visitor, visitor_kw) = recorder.calls
    assert admin["To"] == "owner@bndlabs.dev"
    assert admin["Subject"] == "New message from Ada"
    assert visitor["To"] == "ada@lovelace.dev"
    assert visitor["Subject"] == "Your message was received by bndlabs"
    assert admin_kw["hostname"] == "smtp-relay.brevo.com"
    assert admin_kw["start_tls"] is True
    assert admin_kw["username"] == "site@bndlabs.dev"


def test_templates_dir_overrides_builtin(settings, monkeypatch):
    settings.templates_dir.mkdir()
    (settings.templates_dir / ADMIN_TEMPLATE).write_text("ADMIN {{name}} / {{email}} / {{message}}")
    recorder = SendRecorder()
    monkeypatch.setattr(notifications.aiosmtplib, "send", recorder)

    asyncio.run(Notifier(settings).notify_contact(_message(message="hi")))

    admin = recorder.calls[0][0]
    body = admin.get_payload()[0].get_payload(decode=True).decode("utf-8")
    assert body == "ADMIN Ada / ada@lovelace.dev / hi"


def test_relay_failure_raises_delivery_error(settings, monkeypatch):
    monkeypatch.setattr(notifications.aiosmtplib, "send", SendRecorder(fail=True))
    with pytest.raises(DeliveryError):
        asyncio.run(Notifier(settings).send("x@mail.dev", "subject", "<p>hi</p>"))


def test_unconfigured_relay(settings):
    unconfigured = dataclasses.replace(settings, email_user=None, email_pass=None)
    with pytest.raises(DeliveryError):
        asyncio.run(Notifier(unconfigured).send("x@mail.dev", "subject", "<p>hi</p>"))
