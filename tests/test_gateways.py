"""
tests/test_gateways.py -- Unit tests for the outbound adapters in core/.

Covers:
  - SmtpNotifier: STARTTLS + login + send_message; SMTP and socket errors
    become NotifierError; HTML alternative attached when given
  - LogNotifier: never raises
  - ImgbbBlobStore: posts base64 with the API key, returns data.url; HTTP
    errors, bad JSON, missing URL and missing key raise BlobStoreError

smtplib.SMTP and requests.Session are replaced with mocks; nothing leaves
the process.
"""

from __future__ import annotations

import base64
import smtplib
from unittest.mock import MagicMock, patch

import pytest
import requests

from core.blobstore import IMGBB_UPLOAD_URL, BlobStoreError, ImgbbBlobStore
from core.notifier import LogNotifier, NotifierError, SmtpNotifier


def _notifier() -> SmtpNotifier:
    return SmtpNotifier(
        host="smtp.example.com",
        port=587,
        username="mailer@example.com",
        password="app-password",
        sender="noreply@example.com",
    )


class TestSmtpNotifier:
    def test_send_uses_starttls_and_login(self) -> None:
        with patch("core.notifier.smtplib.SMTP") as smtp_cls:
            conn = smtp_cls.return_value.__enter__.return_value
            _notifier().send("a@x.com", "Your OTP Code", "Your OTP code is 123456.")

        smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=15.0)
        conn.starttls.assert_called_once()
        conn.login.assert_called_once_with("mailer@example.com", "app-password")
        msg = conn.send_message.call_args.args[0]
        assert msg["To"] == "a@x.com"
        assert msg["Subject"] == "Your OTP Code"
        assert msg["From"] == "MemberDesk <noreply@example.com>"
        assert "123456" in msg.get_body(preferencelist=("plain",)).get_content()

    def test_html_alternative(self) -> None:
        with patch("core.notifier.smtplib.SMTP") as smtp_cls:
            conn = smtp_cls.return_value.__enter__.return_value
            _notifier().send("a@x.com", "Subject", "plain", html="<h2>123456</h2>")

        msg = conn.send_message.call_args.args[0]
        assert "<h2>123456</h2>" in msg.get_body(preferencelist=("html",)).get_content()

    def test_smtp_error_becomes_notifier_error(self) -> None:
        with patch("core.notifier.smtplib.SMTP") as smtp_cls:
            conn = smtp_cls.return_value.__enter__.return_value
            conn.send_message.side_effect = smtplib.SMTPRecipientsRefused({"a@x.com": (550, b"no")})
            with pytest.raises(NotifierError):
                _notifier().send("a@x.com", "Subject", "body")

    def test_connection_error_becomes_notifier_error(self) -> None:
        with patch("core.notifier.smtplib.SMTP", side_effect=ConnectionRefusedError("refused")):
            with pytest.raises(NotifierError):
                _notifier().send("a@x.com", "Subject", "body")

    def test_sender_defaults_to_username(self) -> None:
        notifier = SmtpNotifier("smtp.example.com", 587, "mailer@example.com", "pw", sender="")
        assert notifier.sender == "mailer@example.com"


def test_log_notifier_does_not_raise(caplog: pytest.LogCaptureFixture) -> None:
    LogNotifier().send("a@x.com", "Your OTP Code", "Your OTP code is 123456.")
    assert "123456" in caplog.text


def _response(payload=None, status_error: Exception | None = None, json_error: Exception | None = None) -> MagicMock:
    resp = MagicMock()
    if status_error is not None:
        resp.raise_for_status.side_effect = status_error
    if json_error is not None:
        resp.json.side_effect = json_error
    else:
        resp.json.return_value = payload
    return resp


class TestImgbbBlobStore:
    def test_upload_returns_url(self) -> None:
        session = MagicMock()
        session.post.return_value = _response({"data": {"url": "https://i.ibb.co/abc/cat.png"}})
        store = ImgbbBlobStore("imgbb-key", session=session)

        assert store.upload(b"\x89PNG") == "https://i.ibb.co/abc/cat.png"

        args, kwargs = session.post.call_args
        assert args[0] == IMGBB_UPLOAD_URL
        assert kwargs["params"] == {"key": "imgbb-key"}
        assert kwargs["data"]["image"] == base64.b64encode(b"\x89PNG").decode("ascii")
        assert session.max_redirects == 3

    def test_http_error(self) -> None:
        session = MagicMock()
        session.post.return_value = _response(status_error=requests.HTTPError("400 Bad Request"))
        with pytest.raises(BlobStoreError):
            ImgbbBlobStore("imgbb-key", session=session).upload(b"data")

    def test_transport_error(self) -> None:
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("unreachable")
        with pytest.raises(BlobStoreError):
            ImgbbBlobStore("imgbb-key", session=session).upload(b"data")

    def test_invalid_json(self) -> None:
        session = MagicMock()
        session.post.return_value = _response(json_error=ValueError("not json"))
        with pytest.raises(BlobStoreError):
            ImgbbBlobStore("imgbb-key", session=session).upload(b"data")

    def test_missing_url(self) -> None:
        session = MagicMock()
        session.post.return_value = _response({"data": {}, "success": False})
        with pytest.raises(BlobStoreError):
            ImgbbBlobStore("imgbb-key", session=session).upload(b"data")

    def test_missing_api_key(self) -> None:
        session = MagicMock()
        with pytest.raises(BlobStoreError):
            ImgbbBlobStore("", session=session).upload(b"data")
        session.post.assert_not_called()
