"""
tests/conftest.py -- Shared test fixtures for MemberDesk.

This module provides:
  - FakeNotifier / FakeBlobStore / FakeClock: in-process doubles for the
    email relay, the image host and wall-clock time
  - store / lifecycle / archival: unit-test services on an in-memory DB
  - register: runs the request-otp -> complete signup handshake
  - file_store / race: file-backed store and a thread barrier for concurrency tests
  - api: TestClient over the real FastAPI app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API fixture because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. Each api fixture gets a unique DB name so tests never
share state.

The DEBUG env var must be set before api.main is imported so get_settings()
auto-generates SECRET_KEY instead of raising ValueError.
"""

from __future__ import annotations

import os
import re
import threading
import uuid
from collections.abc import Generator
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta

# Set DEBUG before any api/core import so get_settings() can auto-generate
# SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.archive import ArchivalService
from auth.lifecycle import IdentityLifecycle
from auth.models import Identity
from auth.store import IdentityStore, utcnow
from core.blobstore import BlobStoreError
from core.config import Settings
from core.notifier import NotifierError
from media.store import ImageStore

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789"

# ---------------------------------------------------------------------------
# Doubles
# ---------------------------------------------------------------------------


@dataclass
class SentMessage:
    to: str
    subject: str
    body: str
    html: str | None = None


class FakeNotifier:
    """Records messages instead of sending them. Set fail=True to simulate a relay outage."""

    def __init__(self) -> None:
        self.sent: list[SentMessage] = []
        self.fail = False

    def send(self, to: str, subject: str, body: str, html: str | None = None) -> None:
        if self.fail:
            raise NotifierError("relay unavailable")
        self.sent.append(SentMessage(to=to, subject=subject, body=body, html=html))

    def messages_to(self, to: str) -> list[SentMessage]:
        return [m for m in self.sent if m.to == to]

    def last_code(self, to: str) -> str:
        """Return the 6-digit code from the newest message sent to `to`."""
        for msg in reversed(self.sent):
            if msg.to == to:
                match = re.search(r"\b(\d{6})\b", msg.body)
                if match:
                    return match.group(1)
        raise AssertionError(f"no code sent to {to}")


class FakeBlobStore:
    def __init__(self) -> None:
        self.uploads: list[bytes] = []
        self.fail = False

    def upload(self, data: bytes) -> str:
        if self.fail:
            raise BlobStoreError("image host unavailable")
        self.uploads.append(data)
        return f"https://i.ibb.co/test/{len(self.uploads)}.png"

    def close(self) -> None:
        pass


class FakeClock:
    """Callable clock. Starts at the real current time so signed tokens stay valid."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[IdentityStore, None, None]:
    s = IdentityStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def file_store(tmp_path) -> Generator[IdentityStore, None, None]:
    """File-backed store for tests that write from several threads at once."""
    s = IdentityStore(f"sqlite:///{tmp_path / 'memberdesk.db'}")
    yield s
    s.close()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def lifecycle(store: IdentityStore, notifier: FakeNotifier, clock: FakeClock) -> IdentityLifecycle:
    return IdentityLifecycle(store, notifier, secret_key=TEST_SECRET, clock=clock)


@pytest.fixture
def archival(store: IdentityStore, clock: FakeClock) -> ArchivalService:
    return ArchivalService(store, clock=clock)


@pytest.fixture
def register(lifecycle: IdentityLifecycle, notifier: FakeNotifier):
    """Return a helper that runs the full signup handshake and returns the new Identity."""

    def _register(username: str, email: str, password: str) -> Identity:
        lifecycle.request_signup_otp(email)
        return lifecycle.complete_signup(username, email, password, notifier.last_code(email))

    return _register


@pytest.fixture
def race():
    """Return a helper that starts `call` on several threads at once.

    The helper returns (successes, failures): the results of the calls that
    returned and the exceptions raised by the rest.
    """

    def _race(call, workers: int = 8):
        barrier = threading.Barrier(workers)

        def contender():
            barrier.wait()
            return call()

        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [pool.submit(contender) for _ in range(workers)]
        successes, failures = [], []
        for future in futures:
            exc = future.exception()
            if exc is None:
                successes.append(future.result())
            else:
                failures.append(exc)
        return successes, failures

    return _race


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    store: IdentityStore
    image_store: ImageStore
    notifier: FakeNotifier
    blob_store: FakeBlobStore
    clock: FakeClock
    settings: Settings


def _patch_lifespan(harness_state: dict):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test services into app.state so TestClient routes see
    isolated test DBs and fakes rather than SMTP, ImgBB and the real database.
    No sweep task is started.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        for name, value in harness_state.items():
            setattr(app.state, name, value)
        yield

    return test_lifespan


@pytest.fixture
def api() -> Generator[ApiHarness, None, None]:
    db_url = f"sqlite:///file:test_memberdesk_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    identity_store = IdentityStore(db_url)
    image_store = ImageStore(db_url)
    notifier = FakeNotifier()
    blob_store = FakeBlobStore()
    clock = FakeClock()
    settings = Settings(secret_key=TEST_SECRET, contact_admin_email="admin@memberdesk.test")

    app.router.lifespan_context = _patch_lifespan(
        {
            "settings": settings,
            "identity_store": identity_store,
            "image_store": image_store,
            "notifier": notifier,
            "blob_store": blob_store,
            "lifecycle": IdentityLifecycle(identity_store, notifier, secret_key=TEST_SECRET, clock=clock),
            "archival": ArchivalService(identity_store, clock=clock),
        }
    )

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(
            client=client,
            store=identity_store,
            image_store=image_store,
            notifier=notifier,
            blob_store=blob_store,
            clock=clock,
            settings=settings,
        )

    image_store.close()
    identity_store.close()
