"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import threading
from typing import Any

import pytest
import structlog

from gmail_exporter.gmail.parsing import encode_raw


def make_raw(message_id: str, subject: str = "Hello", sender: str = "alice@example.com") -> bytes:
    """Build a small RFC 822 message."""
    return (
        f"From: {sender}\r\n"
        "To: bob@example.com\r\n"
        f"Subject: {subject}\r\n"
        "Date: Mon, 1 Jan 2024 10:00:00 +0000\r\n"
        f"Message-ID: <{message_id}@example.com>\r\n"
        "\r\n"
        f"Body of {message_id}\r\n"
    ).encode("utf-8")


class FakeMailClient:
    """In-memory stand-in for the Gmail API, safe to share across worker threads."""

    def __init__(
        self,
        messages: dict[str, bytes] | None = None,
        *,
        labels: dict[str, list[str]] | None = None,
        page_size: int = 2,
        failing: set[str] | None = None,
    ) -> None:
        self.messages = dict(messages or {})
        self.labels = labels or {}
        self.page_size = page_size
        self.failing = failing or set()
        self.queries: list[str] = []
        self.imported: list[tuple[bytes, str]] = []
        self.modified: list[tuple[str, list[str], list[str]]] = []
        self.deleted: list[str] = []
        self.fetches: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def search(self, query: str, page_token: str | None = None) -> tuple[list[str], str | None]:
        with self._lock:
            self.queries.append(query)
        ids = list(self.messages)
        start = int(page_token or 0)
        end = start + self.page_size
        next_token = str(end) if end < len(ids) else None
        return ids[start:end], next_token

    def fetch(self, message_id: str, format: str = "full") -> dict[str, Any]:
        with self._lock:
            self.fetches.append((message_id, format))
        if message_id in self.failing:
            raise RuntimeError(f"fetch failed for {message_id}")
        raw = self.messages[message_id]
        message: dict[str, Any] = {
            "id": message_id,
            "threadId": f"t-{message_id}",
            "labelIds": self.labels.get(message_id, ["INBOX"]),
            "internalDate": "1704103200000",
            "sizeEstimate": len(raw),
        }
        if format == "raw":
            message["raw"] = encode_raw(raw)
        else:
            message["payload"] = {
                "headers": [
                    {"name": "Subject", "value": f"Subject {message_id}"},
                    {"name": "From", "value": "alice@example.com"},
                    {"name": "Date", "value": "Mon, 1 Jan 2024 10:00:00 +0000"},
                ]
            }
        return message

    def import_message(self, raw: bytes, *, internal_date_source: str = "dateHeader") -> dict[str, Any]:
        if b"FAIL" in raw:
            raise RuntimeError("import rejected")
        with self._lock:
            self.imported.append((raw, internal_date_source))
            return {"id": f"imported-{len(self.imported)}"}

    def modify_labels(self, message_id: str, add: list[str], remove: list[str]) -> dict[str, Any]:
        if message_id in self.failing:
            raise RuntimeError(f"modify failed for {message_id}")
        with self._lock:
            self.modified.append((message_id, add, remove))
        return {"id": message_id}

    def delete_message(self, message_id: str) -> None:
        if message_id in self.failing:
            raise RuntimeError(f"delete failed for {message_id}")
        with self._lock:
            self.deleted.append(message_id)


@pytest.fixture
def mock_settings(tmp_path):
    """Provide mock settings for testing."""
    from gmail_exporter.config import Settings

    return Settings(
        gmail_credentials_path=tmp_path / "credentials.json",
        gmail_token_path=tmp_path / "token.json",
        output_dir=tmp_path / "exports",
        log_level="DEBUG",
        debug=True,
        max_retries=0,
    )


@pytest.fixture
def fake_client() -> FakeMailClient:
    """A fake mailbox holding five messages."""
    ids = [f"18c{i:013x}" for i in range(1, 6)]
    return FakeMailClient({mid: make_raw(mid, subject=f"Subject {mid}") for mid in ids})


@pytest.fixture
def sample_email_data() -> dict:
    """Provide sample email data structure."""
    return {
        "id": "msg123456",
        "threadId": "thread789",
        "labelIds": ["INBOX", "UNREAD"],
        "snippet": "Weekly Newsletter - Python Tips",
        "internalDate": "1704103200000",
        "payload": {
            "headers": [
                {"name": "Subject", "value": "Weekly Newsletter - Python Tips"},
                {"name": "From", "value": "newsletter@python.org"},
                {"name": "To", "value": "user@example.com"},
                {"name": "Date", "value": "Mon, 1 Jan 2024 10:00:00 +0000"},
            ],
            "body": {"data": "encoded_body_data"},
        },
    }


@pytest.fixture
def raw_message():
    """Factory for small RFC 822 messages."""
    return make_raw


@pytest.fixture
def fake_client_factory():
    """Factory for custom fake mailboxes."""
    return FakeMailClient


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo logging configuration done by cli.main()."""
    yield
    structlog.reset_defaults()
