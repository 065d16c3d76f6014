import threading
import time
from unittest.mock import patch

import pytest

from app.exceptions import EmailDeliveryError
from app.services.email_service import ResendEmailSender, render_magic_link_email


LINK = "http://testserver/auth/magic-link/consume?token=abc"


def test_render_includes_link_and_minutes():
    html = render_magic_link_email(LINK, 900)

    assert LINK in html
    assert "15 minutes" in html


async def test_send_without_api_key_fails():
    sender = ResendEmailSender(api_key="", from_address="no-reply@example.com")

    with pytest.raises(EmailDeliveryError, match="not initialized"):
        await sender.send_magic_link("a@example.com", LINK, 900)


@patch("app.services.email_service.resend.Emails.send", return_value={"id": "email-1"})
async def test_send_calls_resend(mock_send):
    sender = ResendEmailSender(api_key="re_test", from_address="no-reply@example.com")

    await sender.send_magic_link("a@example.com", LINK, 900)

    params = mock_send.call_args.args[0]
    assert params["from"] == "no-reply@example.com"
    assert params["to"] == ["a@example.com"]
    assert params["subject"] == "Your one-time sign-in link"
    assert LINK in params["html"]


@patch("app.services.email_service.resend.Emails.send", side_effect=ValueError("domain not verified"))
async def test_send_wraps_provider_errors(mock_send):
    sender = ResendEmailSender(api_key="re_test", from_address="no-reply@example.com")

    with pytest.raises(EmailDeliveryError, match="domain not verified"):
        await sender.send_magic_link("a@example.com", LINK, 900)


async def test_send_times_out():
    sender = ResendEmailSender(api_key="re_test", from_address="no-reply@example.com", timeout_seconds=0.05)

    with patch("app.services.email_service.resend.Emails.send", side_effect=lambda params: time.sleep(0.5)):
        with pytest.raises(EmailDeliveryError, match="timed out"):
            await sender.send_magic_link("a@example.com", LINK, 900)


async def test_timed_out_send_keeps_running_in_background():
    finished = threading.Event()

    def slow_send(params):
        time.sleep(0.2)
        finished.set()

    sender = ResendEmailSender(api_key="re_test", from_address="no-reply@example.com", timeout_seconds=0.05)

    with patch("app.services.email_service.resend.Emails.send", side_effect=slow_send):
        with pytest.raises(EmailDeliveryError, match="timed out"):
            await sender.send_magic_link("a@example.com", LINK, 900)

        # The provider call is not cancelled by the timeout
        assert finished.wait(timeout=2)
