"""Intake, polling and card image endpoints."""
import json

import pytest
from conftest import CARD_URL, GOOD_JOB, JPEG_BYTES, PNG_BYTES, VALID_PALMS, palm_files, wait_for_terminal
from fastapi.testclient import TestClient

from palmjob.core.config import Settings
from palmjob.core.rate_limit import limiter
from palmjob.core.store import ResultStore
from palmjob.main import create_app

HEIC_BYTES = b"\x00\x00\x00\x18ftypheic\x00\x00\x00\x00mif1heic" + b"\x00" * 64


def test_analyze_returns_pending_id(client: TestClient, fake_openai):
    fake_openai.script(VALID_PALMS, GOOD_JOB)
    r = client.post("/api/analyze", files=palm_files())
    assert r.status_code == 200, r.text
    j = r.json()
    assert j["status"] == "pending"
    assert j["id"]

    body = wait_for_terminal(client, j["id"])
    assert body["status"] == "completed"
    assert body["progress"] == 100
    assert body["job"]["title"] == "Cloud Watcher"
    assert body["job"]["shortComment"] == "Head in the clouds ☁️"
    assert body["job"]["cardImageUrl"] == CARD_URL
    assert "error" not in body
    assert body["id"] == j["id"]
    assert "createdAt" in body and "expiresAt" in body


def test_analyze_with_gender(client: TestClient, fake_openai):
    fake_openai.script(VALID_PALMS, GOOD_JOB)
    r = client.post("/api/analyze", files=palm_files(), data={"gender": "Male"})
    assert r.status_code == 200
    wait_for_terminal(client, r.json()["id"])
    assert "is a man" in fake_openai.image_calls[0]["prompt"]


def test_analyze_rejected_palm(client: TestClient, fake_openai):
    fake_openai.script(json.dumps({"isValid": False, "errorType": "HAND_MISMATCH"}))
    r = client.post("/api/analyze", files=palm_files())
    body = wait_for_terminal(client, r.json()["id"])
    assert body["status"] == "failed"
    assert body["error"] == "HAND_MISMATCH"
    assert body["errorMessage"]
    assert "job" not in body


def test_analysis_failure_still_completes(client: TestClient, fake_openai):
    fake_openai.script(VALID_PALMS, "{not json")
    r = client.post("/api/analyze", files=palm_files())
    body = wait_for_terminal(client, r.json()["id"])
    assert body["status"] == "completed"
    assert body["job"]["title"] in ("Luck Courier", "Dream Interpreter", "Mood Curator")
    assert "cardImageUrl" not in body["job"]


@pytest.mark.parametrize(
    "files,status,message",
    [
        ({}, 400, "Please upload a photo of your left palm."),
        ({"leftImage": ("l.jpg", JPEG_BYTES, "image/jpeg")}, 400, "Please upload a photo of your right palm."),
        (
            {"leftImage": ("l.pdf", b"%PDF-1.7 not an image", "image/jpeg"), "rightImage": ("r.jpg", JPEG_BYTES, "image/jpeg")},
            400,
            "The left palm file must be an image.",
        ),
        (
            {"leftImage": ("l.jpg", JPEG_BYTES, "image/jpeg"), "rightImage": ("r.txt", b"hello", "text/plain")},
            400,
            "The right palm file must be an image.",
        ),
        (
            {"leftImage": ("l.jpg", JPEG_BYTES, "image/jpeg"), "rightImage": ("r.png", PNG_BYTES + b"\x00" * (1024 * 1024), "image/png")},
            413,
            "The right palm photo must be 1 MB or smaller.",
        ),
    ],
)
def test_analyze_upload_errors(client: TestClient, fake_openai, redis_client, files, status, message):
    r = client.post("/api/analyze", files=files or None, data={"note": "x"})
    assert r.status_code == status
    j = r.json()
    assert j["error"] == message
    assert j["status_code"] == status
    assert j["request_id"] == r.headers["X-Request-ID"]
    assert fake_openai.chat_calls == []
    assert client.portal.call(redis_client.keys, "palmjob:result:*") == []


@pytest.mark.parametrize("hand", ["left", "right"])
def test_heic_upload_refused(client: TestClient, fake_openai, redis_client, hand):
    files = palm_files()
    files[f"{hand}Image"] = (f"{hand}.heic", HEIC_BYTES, "image/heic")
    r = client.post("/api/analyze", files=files)
    assert r.status_code == 400
    assert r.json()["error"] == f"The {hand} palm photo is HEIC. Please upload a JPEG, PNG, WEBP or GIF photo."
    assert client.portal.call(redis_client.keys, "palmjob:result:*") == []
    assert fake_openai.chat_calls == []


def test_rate_limit_follows_app_settings(redis_client, fake_openai, http_client):
    limiter.reset()
    app = create_app(
        Settings(rate_limit_per_minute=2),
        redis_client=redis_client,
        openai_client=fake_openai,
        http_client=http_client,
    )
    headers = {"X-Forwarded-For": "198.51.100.4"}
    with TestClient(app) as c:
        assert [c.post("/api/analyze", headers=headers).status_code for _ in range(3)] == [400, 400, 429]


def test_image_type_checked_before_size(client: TestClient):
    big_jpeg = JPEG_BYTES + b"\x00" * (1024 * 1024)
    r = client.post(
        "/api/analyze",
        files={"leftImage": ("l.jpg", big_jpeg, "image/jpeg"), "rightImage": ("r.gif", b"nope", "image/gif")},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "The right palm file must be an image."


def test_analyze_invalid_gender(client: TestClient, redis_client):
    r = client.post("/api/analyze", files=palm_files(), data={"gender": "other"})
    assert r.status_code == 400
    assert r.json()["error"] == "Gender must be 'male' or 'female'."


def test_blank_gender_is_ignored(client: TestClient, fake_openai):
    fake_openai.script(VALID_PALMS, GOOD_JOB)
    r = client.post("/api/analyze", files=palm_files(), data={"gender": "  "})
    assert r.status_code == 200
    wait_for_terminal(client, r.json()["id"])
    assert "The character is a" not in fake_openai.image_calls[0]["prompt"]


def test_result_not_found(client: TestClient):
    r = client.get("/api/result/does-not-exist")
    assert r.status_code == 404
    assert r.json()["error"] == "Result not found or expired."


def test_result_is_not_cached(client: TestClient, fake_openai):
    fake_openai.script(VALID_PALMS, GOOD_JOB)
    analysis_id = client.post("/api/analyze", files=palm_files()).json()["id"]
    r = client.get(f"/api/result/{analysis_id}")
    assert r.headers["cache-control"] == "no-store"
    wait_for_terminal(client, analysis_id)


def test_card_image_endpoint(client: TestClient):
    store: ResultStore = client.app.state.store
    client.portal.call(store.save_image, "img-1", "card", PNG_BYTES, "image/png")
    r = client.get("/api/image/img-1/card")
    assert r.status_code == 200
    assert r.content == PNG_BYTES
    assert r.headers["content-type"] == "image/png"

    r = client.get("/api/image/img-1/other")
    assert r.status_code == 404
    assert r.json()["error"] == "Image not found or expired."


def test_durable_card_copy_end_to_end(redis_client, fake_openai, http_client):
    app = create_app(
        Settings(store_card_images=True, base_url="https://palm.test"),
        redis_client=redis_client,
        openai_client=fake_openai,
        http_client=http_client,
    )
    fake_openai.script(VALID_PALMS, GOOD_JOB)
    with TestClient(app) as c:
        analysis_id = c.post("/api/analyze", files=palm_files()).json()["id"]
        body = wait_for_terminal(c, analysis_id)
        assert body["job"]["cardImageUrl"] == f"https://palm.test/api/image/{analysis_id}/card"
        r = c.get(f"/api/image/{analysis_id}/card")
        assert r.status_code == 200
        assert r.content == PNG_BYTES


def test_unknown_route_uses_error_shape(client: TestClient):
    r = client.get("/api/nothing-here")
    assert r.status_code == 404
    assert r.json()["status_code"] == 404
