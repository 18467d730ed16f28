import base64
import importlib
import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from ugc_reviews.config import Settings
from ugc_reviews.container import build_container, set_container
from ugc_reviews.errors import UpstreamUnavailableError
from ugc_reviews.memory_store import InMemoryBlobStore

FUNCTIONS_DIR = Path(__file__).resolve().parents[1] / "src" / "functions"
FUNCTION_MODULES = ("handler", "interface", "service")

ADMIN_KEY = "test-admin-key"
TOKEN_SECRET = "test-token-secret"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode()


class FrozenClock:
    def __init__(self, start=None):
        self.now = start or datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeUploader:
    """Records uploads and hands back predictable URLs."""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def upload(self, data, filename="image"):
        if self.fail:
            raise UpstreamUnavailableError("Image upload failed", service="cloudinary")
        self.calls.append((filename, data))
        return f"https://img.example.com/ugc/{len(self.calls)}.jpg"


class FakeMailer:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def send(self, to_email, subject, html_body, to_name=""):
        if self.fail:
            raise UpstreamUnavailableError("Email send failed (500)", service="brevo")
        self.sent.append(
            {"to": to_email, "name": to_name, "subject": subject, "html": html_body}
        )
        return {"messageId": f"msg-{len(self.sent)}"}


class InterleavingStore(InMemoryBlobStore):
    """Runs ``interleave`` once, just before the next write, to simulate a concurrent request."""

    def __init__(self):
        super().__init__()
        self.interleave = None

    def transact(self, ops):
        hook, self.interleave = self.interleave, None
        if hook:
            hook()
        return super().transact(ops)


def make_settings(**overrides):
    values = {
        "admin_key": ADMIN_KEY,
        "token_secret": TOKEN_SECRET,
        "store_backend": "memory",
        "brand_name": "Natural Uncle",
        "coupon_prefix": "NU",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def load_function(relative_path):
    """Imports ``handler.py`` from a function directory the way Lambda packages it."""
    function_dir = str(FUNCTIONS_DIR / relative_path)
    for name in FUNCTION_MODULES:
        sys.modules.pop(name, None)
    sys.path.insert(0, function_dir)
    importlib.invalidate_caches()
    try:
        return importlib.import_module("handler")
    finally:
        sys.path.remove(function_dir)
        for name in FUNCTION_MODULES:
            sys.modules.pop(name, None)


def api_event(body=None, query=None, admin_key=None, headers=None):
    event = {"headers": dict(headers or {})}
    if admin_key:
        event["headers"]["x-admin-key"] = admin_key
    if body is not None:
        event["body"] = body if isinstance(body, str) else json.dumps(body)
    if query is not None:
        event["queryStringParameters"] = query
    return event


def response_body(response):
    return json.loads(response["body"]) if response["body"] else None


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    return InMemoryBlobStore()


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def settings():
    return make_settings(brevo_key="brevo-key", brevo_sender_email="care@example.com")


@pytest.fixture
def container(settings, store, uploader, mailer):
    built = build_container(settings, store=store, uploader=uploader, mailer=mailer)
    set_container(built)
    yield built
    set_container(None)
