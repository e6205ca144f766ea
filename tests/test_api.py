"""
Tests for the ImageMax HTTP API.
"""

import asyncio
import base64
import io
from datetime import timedelta

from PIL import Image
from starlette.datastructures import Headers, UploadFile

from imagemax.core.config import settings
from imagemax.core.errors import ImageValidationError
from imagemax.core.utils import utcnow
from imagemax.models.processed_image import ProcessedImage, ToolUsage
from imagemax.models.profile import UserProfile
from imagemax.services import removebg
from imagemax.services.pipeline import read_upload
from imagemax.services.quota import STORAGE_QUOTA_LIMITS


def _upload(data, filename="test.png", content_type="image/png"):
    return {"file": (filename, io.BytesIO(data), content_type)}


def _seed(db, user_id, age_days=0, file_size=1000, **fields):
    record = ProcessedImage(
        user_id=user_id,
        tool_type=fields.pop("tool_type", "format-conversion"),
        status=fields.pop("status", "completed"),
        file_size=file_size,
        created_at=utcnow() - timedelta(days=age_days),
        **fields,
    )
    with db() as s:
        s.add(record)
        s.commit()
    return record.id


# ── Health & auth ─────────────────────────────────────────────────────────────

def test_health(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_register_login_and_me(client, auth_headers):
    resp = client.get("/auth/me", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["email"] == "user@example.com"


def test_register_duplicate(client, auth_headers):
    resp = client.post("/auth/register", json={"email": "user@example.com", "password": "another1"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "User already exists"}


def test_login_wrong_password(client, auth_headers):
    resp = client.post("/auth/login", data={"username": "user@example.com", "password": "nope-nope"})
    assert resp.status_code == 401


def test_tools_require_auth(client, image_bytes):
    resp = client.post("/api/convert", files=_upload(image_bytes()))
    assert resp.status_code == 401
    assert "error" in resp.json()


# ── Upload validation ─────────────────────────────────────────────────────────

def test_missing_file(client, auth_headers):
    resp = client.post("/api/convert", data={"format": "png"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "No file provided"


def test_non_image_upload(client, auth_headers):
    resp = client.post("/api/enhance", files=_upload(b"hello", "notes.txt", "text/plain"), headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid file type. Only images are allowed."


def test_read_upload_rejects_oversized_file(monkeypatch):
    monkeypatch.setattr(settings, "MAX_FILE_SIZE", 10)
    upload = UploadFile(file=io.BytesIO(b"x" * 11), filename="big.png",
                        headers=Headers({"content-type": "image/png"}))
    try:
        asyncio.run(read_upload(upload))
    except ImageValidationError as e:
        assert e.message == "File size too large. Maximum size is 10MB."
    else:
        raise AssertionError("oversized upload accepted")


def test_oversized_request_body_rejected_by_middleware(client, auth_headers, image_bytes, monkeypatch):
    monkeypatch.setattr(settings, "MAX_FILE_SIZE", 100)
    resp = client.post("/api/convert", files=_upload(image_bytes(width=200, height=200)), headers=auth_headers)
    assert resp.status_code == 413
    assert resp.json()["error"] == "File too large"


# ── Convert ───────────────────────────────────────────────────────────────────

def test_convert_stores_both_files_and_logs_record(client, auth_headers, user_id, image_bytes, fake_minio, db):
    resp = client.post(
        "/api/convert",
        files=_upload(image_bytes()),
        data={"format": "webp", "quality": "70"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["status"] == "completed"
    assert body["metadata"]["outputFormat"] == "webp"
    assert body["metadata"]["quality"] == 70
    assert Image.open(io.BytesIO(base64.b64decode(body["data"]))).format == "WEBP"

    keys = sorted(fake_minio.objects)
    assert len(keys) == 2
    assert keys[0].startswith(f"{user_id}/format-conversion/")
    assert keys[0].endswith("-original.png")
    assert keys[1].endswith("-processed.webp")
    assert body["originalUrl"] == f"http://storage.test/images/{keys[0]}"
    assert body["processedUrl"] == f"http://storage.test/images/{keys[1]}"

    with db() as s:
        record = s.get(ProcessedImage, body["id"])
        assert record.status == "completed"
        assert record.tool_type == "format-conversion"
        assert record.settings == {"format": "webp", "quality": 70}
        assert record.file_size == len(base64.b64decode(body["data"]))
        assert record.processing_duration is not None
        assert record.user_id == user_id


def test_convert_unsupported_format_marks_record_failed(client, auth_headers, image_bytes, fake_minio, db):
    resp = client.post("/api/convert", files=_upload(image_bytes()), data={"format": "tiff"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Unsupported output format", "details": "tiff"}
    assert fake_minio.objects == {}

    with db() as s:
        records = s.query(ProcessedImage).all()
        assert len(records) == 1
        assert records[0].status == "failed"
        assert records[0].error_message == "Unsupported output format"


def test_convert_corrupt_image(client, auth_headers):
    resp = client.post("/api/convert", files=_upload(b"\x89PNG broken"), headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid image dimensions"


def test_storage_failure_returns_500_with_details(client, auth_headers, image_bytes, fake_minio, db):
    def broken_put(*args, **kwargs):
        raise RuntimeError("bucket unavailable")
    fake_minio.put_object = broken_put

    resp = client.post("/api/convert", files=_upload(image_bytes()), headers=auth_headers)
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to process image", "details": "bucket unavailable"}

    with db() as s:
        record = s.query(ProcessedImage).one()
        assert record.status == "failed"
        assert record.error_message == "bucket unavailable"


# ── Enhance & upscale ─────────────────────────────────────────────────────────

def test_enhance(client, auth_headers, image_bytes):
    resp = client.post(
        "/api/enhance",
        files=_upload(image_bytes(fmt="JPEG"), "photo.jpg", "image/jpeg"),
        data={"type": "landscape", "intensity": "70"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["metadata"]["enhancementType"] == "landscape"
    assert body["metadata"]["intensity"] == 70
    assert body["processedUrl"].endswith("-processed.jpeg")


def test_upscale(client, auth_headers, image_bytes):
    resp = client.post(
        "/api/upscale",
        files=_upload(image_bytes(width=10, height=8)),
        data={"scale": "4"},
        headers=auth_headers,
    )
    assert resp.status_code == 200
    meta = resp.json()["metadata"]
    assert (meta["newWidth"], meta["newHeight"]) == (40, 32)
    out = Image.open(io.BytesIO(base64.b64decode(resp.json()["data"])))
    assert out.size == (40, 32)


def test_upscale_bad_scale(client, auth_headers, image_bytes):
    resp = client.post("/api/upscale", files=_upload(image_bytes()), data={"scale": "16"}, headers=auth_headers)
    assert resp.status_code == 400


def test_non_numeric_form_value(client, auth_headers, image_bytes):
    resp = client.post("/api/upscale", files=_upload(image_bytes()), data={"scale": "big"}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid request"


# ── Background removal ────────────────────────────────────────────────────────

class _Response:
    def __init__(self, status_code, content=b"", payload=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self.content = content
        self._payload = payload

    def json(self):
        return self._payload


def test_remove_background(client, auth_headers, image_bytes, monkeypatch, db):
    cutout = image_bytes(mode="RGBA", color=(0, 0, 0, 0))
    monkeypatch.setattr(removebg.requests, "post", lambda url, **kw: _Response(200, content=cutout))

    resp = client.post("/api/remove-background", files=_upload(image_bytes(fmt="JPEG"), "me.jpg", "image/jpeg"),
                       headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert base64.b64decode(body["data"]) == cutout
    assert body["originalUrl"].endswith("-original.jpeg")
    assert body["processedUrl"].endswith("-processed.png")

    with db() as s:
        record = s.get(ProcessedImage, body["id"])
        assert record.tool_type == "background-removal"
        assert record.settings["outputFormat"] == "png"
        usage = s.query(ToolUsage).one()
        assert usage.success is True
        assert usage.request_metadata["processedSize"] == len(cutout)


def test_remove_background_api_error(client, auth_headers, image_bytes, monkeypatch, db):
    payload = {"errors": [{"title": "Could not identify foreground in image", "code": "unknown_foreground"}]}
    monkeypatch.setattr(removebg.requests, "post", lambda url, **kw: _Response(400, payload=payload))

    resp = client.post("/api/remove-background", files=_upload(image_bytes()), headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Could not identify foreground in image"

    with db() as s:
        assert s.query(ProcessedImage).one().status == "failed"
        usage = s.query(ToolUsage).one()
        assert usage.success is False
        assert usage.error_message == "Could not identify foreground in image"


def test_remove_background_out_of_credits(client, auth_headers, user_id, image_bytes, monkeypatch, db):
    payload = {"errors": [{"title": "Insufficient credits", "code": "insufficient_credits"}]}
    monkeypatch.setattr(removebg.requests, "post", lambda url, **kw: _Response(402, payload=payload))

    resp = client.post("/api/remove-background", files=_upload(image_bytes()), headers=auth_headers)
    assert resp.status_code == 402
    assert resp.json() == {"error": "Insufficient credits", "details": "insufficient_credits"}

    with db() as s:
        record = s.query(ProcessedImage).one()
        assert record.status == "failed"
        assert record.error_message == "Insufficient credits"
        assert record.processing_duration is not None
        usage = s.query(ToolUsage).one()
        assert usage.user_id == user_id
        assert usage.success is False


# ── History & polling ─────────────────────────────────────────────────────────

def test_history_and_status_poll(client, auth_headers, user_id, db):
    first = _seed(db, user_id, age_days=2, tool_type="upscaler")
    second = _seed(db, user_id, age_days=0, tool_type="enhancement", status="processing")

    resp = client.get("/api/images", headers=auth_headers)
    assert resp.status_code == 200
    assert [r["id"] for r in resp.json()] == [second, first]

    resp = client.get("/api/images", params={"tool": "upscaler"}, headers=auth_headers)
    assert [r["id"] for r in resp.json()] == [first]

    resp = client.get(f"/api/images/{second}", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "processing"
    assert resp.json()["toolType"] == "enhancement"


def test_status_poll_not_found_and_forbidden(client, auth_headers, db):
    resp = client.get("/api/images/missing", headers=auth_headers)
    assert resp.status_code == 404

    other = _seed(db, "someone-else")
    resp = client.get(f"/api/images/{other}", headers=auth_headers)
    assert resp.status_code == 403


# ── Quota ─────────────────────────────────────────────────────────────────────

def test_storage_usage(client, auth_headers, user_id, db):
    _seed(db, user_id, file_size=STORAGE_QUOTA_LIMITS["free"] // 2)
    # size missing: fall back to the sizes recorded in metadata
    _seed(db, user_id, file_size=None, image_metadata={"originalSize": 300, "processedSize": 200})

    resp = client.get("/api/storage/usage", headers=auth_headers)
    assert resp.status_code == 200
    usage = resp.json()
    assert usage["total"] == STORAGE_QUOTA_LIMITS["free"]
    assert usage["used"] == STORAGE_QUOTA_LIMITS["free"] // 2 + 500
    assert usage["remaining"] == usage["total"] - usage["used"]
    assert usage["warning"] is False


def test_quota_blocks_upload(client, auth_headers, user_id, image_bytes, fake_minio, db):
    _seed(db, user_id, file_size=STORAGE_QUOTA_LIMITS["free"])

    resp = client.post("/api/convert", files=_upload(image_bytes()), headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Storage quota exceeded")
    assert fake_minio.objects == {}


def test_pro_tier_gets_larger_quota(client, auth_headers, user_id, image_bytes, db):
    _seed(db, user_id, file_size=STORAGE_QUOTA_LIMITS["free"])
    with db() as s:
        s.query(UserProfile).filter_by(user_id=user_id).update({"subscription_tier": "pro"})
        s.commit()

    usage = client.get("/api/storage/usage", headers=auth_headers).json()
    assert usage["total"] == STORAGE_QUOTA_LIMITS["pro"]

    resp = client.post("/api/convert", files=_upload(image_bytes()), headers=auth_headers)
    assert resp.status_code == 200


# ── Cleanup ───────────────────────────────────────────────────────────────────

def test_storage_cleanup_removes_only_old_own_files(client, auth_headers, user_id, fake_minio, db):
    old = _seed(db, user_id, age_days=8,
                original_url="http://storage.test/images/u/upscaler/1-original.png",
                processed_url="http://storage.test/images/u/upscaler/1-processed.png")
    fresh = _seed(db, user_id, age_days=6)
    foreign = _seed(db, "someone-else", age_days=30)

    resp = client.post("/api/storage/cleanup", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["message"] == "Cleaned up 1 files"
    assert resp.json()["deletedCount"] == 1
    assert fake_minio.removed == ["u/upscaler/1-original.png", "u/upscaler/1-processed.png"]

    with db() as s:
        assert s.get(ProcessedImage, old) is None
        assert s.get(ProcessedImage, fresh) is not None
        assert s.get(ProcessedImage, foreign) is not None


def test_storage_cleanup_reports_unreachable_objects(client, auth_headers, user_id, fake_minio, db):
    old = _seed(db, user_id, age_days=8,
                original_url="http://storage.test/images/u/enhancement/2-original.png",
                processed_url="http://storage.test/images/u/enhancement/2-processed.png")
    fake_minio.fail_keys.add("u/enhancement/2-original.png")

    resp = client.post("/api/storage/cleanup", headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["deletedCount"] == 1
    assert len(body["errors"]) == 1
    assert body["errors"][0].startswith("u/enhancement/2-original.png: ")
    assert fake_minio.removed == ["u/enhancement/2-processed.png"]

    with db() as s:
        assert s.get(ProcessedImage, old) is None


def test_storage_cleanup_nothing_to_do(client, auth_headers):
    resp = client.post("/api/storage/cleanup", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["message"] == "No files to clean up"
    assert resp.json()["deletedCount"] == 0


def test_cron_cleanup_requires_secret(client, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
    assert client.get("/api/cron/cleanup").status_code == 401
    assert client.get("/api/cron/cleanup", headers={"Authorization": "Bearer wrong"}).status_code == 401


def test_cron_cleanup_locked_when_secret_unset(client, monkeypatch):
    monkeypatch.setattr(settings, "CRON_SECRET", None)
    assert client.get("/api/cron/cleanup", headers={"Authorization": "Bearer None"}).status_code == 401


def test_cron_cleanup_sweeps_all_users(client, monkeypatch, db):
    monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")
    _seed(db, "user-a", age_days=10)
    _seed(db, "user-b", age_days=9)
    keep = _seed(db, "user-c", age_days=1)

    resp = client.get("/api/cron/cleanup", headers={"Authorization": "Bearer s3cret"})
    assert resp.status_code == 200
    assert resp.json()["deletedCount"] == 2

    with db() as s:
        assert [r.id for r in s.query(ProcessedImage).all()] == [keep]


# ── Profile ───────────────────────────────────────────────────────────────────

def test_profile_defaults_and_update(client, auth_headers):
    resp = client.get("/api/profile", headers=auth_headers)
    assert resp.status_code == 200
    profile = resp.json()
    assert profile["fullName"] == "Test User"
    assert profile["theme"] == "system"
    assert profile["emailNotifications"] is True
    assert profile["subscriptionTier"] == "free"

    resp = client.put("/api/profile", json={"theme": "dark", "emailNotifications": False, "bio": "hi"},
                      headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["theme"] == "dark"
    assert resp.json()["emailNotifications"] is False
    assert resp.json()["bio"] == "hi"


def test_profile_rejects_unknown_theme(client, auth_headers):
    resp = client.put("/api/profile", json={"theme": "neon"}, headers=auth_headers)
    assert resp.status_code == 400


# ── Rate limiting ─────────────────────────────────────────────────────────────

def test_rate_limit_on_api_posts(client, auth_headers, image_bytes):
    data = image_bytes()
    statuses = [
        client.post("/api/convert", files=_upload(data), data={"format": "png"}, headers=auth_headers).status_code
        for _ in range(11)
    ]
    assert statuses[:10] == [200] * 10
    assert statuses[10] == 429
