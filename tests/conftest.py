"""Pytest fixtures: in-memory Redis, scripted OpenAI client, app client, sample images."""
import json
import os
import time
from types import SimpleNamespace

import pytest
from fakeredis import FakeAsyncRedis, FakeServer
from fastapi.testclient import TestClient

# Must be set before palmjob is imported (settings are read at import time)
os.environ.setdefault("OPENAI_API_KEY", "sk-test-dummy")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "30")
os.environ.setdefault("PROMPT_LOG_ENABLED", "true")
os.environ.setdefault("UPLOAD_MAX_MB", "1")
os.environ.setdefault("BASE_URL", "https://palm.test")

import httpx

from palmjob.core.config import Settings
from palmjob.core.rate_limit import limiter
from palmjob.main import create_app

# Smallest headers sniff_image_type accepts, padded to look like real files
JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00" + b"\x00" * 64
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR" + b"\x00" * 64

VALID_PALMS = json.dumps({"isValid": True, "errorType": None, "message": "Both palms look good."})
GOOD_JOB = json.dumps(
    {
        "title": "Cloud Watcher",
        "shortComment": "Head in the clouds ☁️",
        "interpretation": "Your head line drifts upward.\n\nYou should watch clouds for a living.",
    }
)
CARD_URL = "https://images.example.com/card.png"


class _FakeCompletions:
    def __init__(self, owner: "FakeOpenAI") -> None:
        self._owner = owner

    async def create(self, **kwargs):
        self._owner.chat_calls.append(kwargs)
        item = self._owner.chat_responses.pop(0) if self._owner.chat_responses else self._owner.default_chat
        if isinstance(item, BaseException):
            raise item
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=item))])


class _FakeImages:
    def __init__(self, owner: "FakeOpenAI") -> None:
        self._owner = owner

    async def generate(self, **kwargs):
        self._owner.image_calls.append(kwargs)
        item = self._owner.image_responses.pop(0) if self._owner.image_responses else CARD_URL
        if isinstance(item, BaseException):
            raise item
        return SimpleNamespace(data=[SimpleNamespace(url=item)] if item else [])


class FakeOpenAI:
    """
    Stands in for AsyncOpenAI. Chat responses are consumed in call order
    (validation first, then analysis); an exception in the queue is raised.
    """

    def __init__(self) -> None:
        self.chat_responses: list = []
        self.image_responses: list = []
        self.default_chat: object = VALID_PALMS
        self.chat_calls: list[dict] = []
        self.image_calls: list[dict] = []
        self.chat = SimpleNamespace(completions=_FakeCompletions(self))
        self.images = _FakeImages(self)

    def script(self, *chat, images=()) -> "FakeOpenAI":
        self.chat_responses = list(chat)
        self.image_responses = list(images)
        return self

    async def close(self) -> None:
        return None


def card_download_handler(request: httpx.Request) -> httpx.Response:
    if request.url.host == "images.example.com":
        return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})
    return httpx.Response(404)


@pytest.fixture
def fake_openai() -> FakeOpenAI:
    return FakeOpenAI()


@pytest.fixture
def redis_client() -> FakeAsyncRedis:
    return FakeAsyncRedis(server=FakeServer())


@pytest.fixture
def http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(card_download_handler))


@pytest.fixture
def app_settings() -> Settings:
    return Settings()


@pytest.fixture(scope="function")
def client(app_settings, redis_client, fake_openai, http_client):
    """TestClient; lifespan wires the store and services onto app.state."""
    limiter.reset()
    app = create_app(
        app_settings,
        redis_client=redis_client,
        openai_client=fake_openai,
        http_client=http_client,
    )
    with TestClient(app) as c:
        yield c


def palm_files(left: bytes = JPEG_BYTES, right: bytes = JPEG_BYTES) -> dict:
    return {
        "leftImage": ("left.jpg", left, "image/jpeg"),
        "rightImage": ("right.jpg", right, "image/jpeg"),
    }


def wait_for_terminal(client: TestClient, analysis_id: str, timeout: float = 5.0) -> dict:
    """Polls the result endpoint until the record is completed or failed."""
    deadline = time.monotonic() + timeout
    while True:
        r = client.get(f"/api/result/{analysis_id}")
        assert r.status_code == 200, r.text
        body = r.json()
        if body["status"] in ("completed", "failed"):
            return body
        if time.monotonic() > deadline:
            raise AssertionError(f"analysis {analysis_id} still {body['status']} after {timeout}s")
        time.sleep(0.02)
