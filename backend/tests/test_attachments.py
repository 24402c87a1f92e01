"""
Attachment parsing and signed URL resolution tests.
"""

import threading
import json

import httpx
import pytest

from stockledger.services.attachment_service import (
    HttpBlobStore,
    NullBlobStore,
    build_blob_store,
    extract_object_path,
    parse_attachments,
    resolve_attachments,
    resolve_for_receipt,
)
from stockledger.services.errors import AttachmentUnavailable, ValidationError


class TestParseAttachments:

    @pytest.mark.parametrize("raw, expected", [
        (None, []),
        ("a/b.jpg", ["a/b.jpg"]),
        ("   ", []),
        (["a.jpg", "", None, "b.jpg"], ["a.jpg", "b.jpg"]),
        ({"urls": ["x.png"]}, ["x.png"]),
        ({"files": ["y.png", "z.png"]}, ["y.png", "z.png"]),
        ({"paths": []}, []),
        ({"paths": None}, []),
    ])
    def test_accepted_shapes(self, raw, expected):
        assert parse_attachments(raw) == expected

    def test_first_wrapper_key_wins(self):
        assert parse_attachments({"urls": ["u.jpg"], "files": ["f.jpg"]}) == ["u.jpg"]

    @pytest.mark.parametrize("raw", [
        42,
        {"photos": ["a.jpg"]},
        {"urls": "a.jpg"},
        ["a.jpg", 7],
        [{"path": "a.jpg"}],
    ])
    def test_rejected_shapes(self, raw):
        with pytest.raises(ValidationError):
            parse_attachments(raw)

    def test_too_many_attachments(self):
        with pytest.raises(ValidationError):
            parse_attachments([f"p{i}.jpg" for i in range(21)])

    def test_order_is_preserved(self):
        paths = [f"r1/u1/{i}.jpg" for i in range(10)]
        assert parse_attachments({"files": paths}) == paths


class TestExtractObjectPath:

    @pytest.mark.parametrize("value, expected", [
        ("r1/u1/a.jpg", "r1/u1/a.jpg"),
        ("  waybills/r1/u1/a.jpg ", "r1/u1/a.jpg"),
        ("https://x.example.com/storage/v1/object/public/waybills/r1/a%20b.jpg", "r1/a b.jpg"),
        ("https://x.example.com/storage/v1/object/sign/waybills/r1/a.jpg?token=abc", "r1/a.jpg"),
        ("https://elsewhere.example.com/other/a.jpg", "https://elsewhere.example.com/other/a.jpg"),
        ("", ""),
    ])
    def test_extract(self, value, expected):
        assert extract_object_path(value, "waybills") == expected


class FakeBlobStore:
    """Signs everything except the paths it is told to fail or stall on."""

    def __init__(self, fail=(), stall=()):
        self.fail = set(fail)
        self.stall = set(stall)
        self.release = threading.Event()
        self.calls = []

    def sign(self, path, ttl_seconds):
        self.calls.append((path, ttl_seconds))
        if path in self.fail:
            raise AttachmentUnavailable(f"no object {path}")
        if path in self.stall:
            self.release.wait(5)
        return f"https://cdn.example.com/{path}?ttl={ttl_seconds}"


class TestResolveAttachments:

    def test_empty_list_makes_no_calls(self):
        store = FakeBlobStore()
        assert resolve_attachments([], store) == []
        assert store.calls == []

    def test_all_signed_in_order(self):
        store = FakeBlobStore()
        paths = ["a.jpg", "b.jpg", "c.jpg"]

        resolved = resolve_attachments(paths, store, ttl_seconds=600)

        assert [r.path for r in resolved] == paths
        assert all(r.status == "available" for r in resolved)
        assert resolved[0].url == "https://cdn.example.com/a.jpg?ttl=600"
        assert resolved[0].expires_at is not None

    def test_partial_failure_degrades_only_that_attachment(self):
        store = FakeBlobStore(fail={"b.jpg"})

        resolved = resolve_attachments(["a.jpg", "b.jpg", "c.jpg"], store)

        assert [r.status for r in resolved] == ["available", "unavailable", "available"]
        assert resolved[1].url is None
        assert "no object b.jpg" in resolved[1].error

    def test_slow_signing_times_out(self):
        store = FakeBlobStore(stall={"slow.jpg"})
        try:
            resolved = resolve_attachments(["fast.jpg", "slow.jpg"], store, timeout=0.2, max_workers=2)
        finally:
            store.release.set()

        assert resolved[0].status == "available"
        assert resolved[1].status == "unavailable"
        assert resolved[1].error == "timed out"

    def test_null_store_marks_everything_unavailable(self):
        resolved = resolve_attachments(["a.jpg"], NullBlobStore())
        assert resolved[0].status == "unavailable"
        assert "not configured" in resolved[0].error

    def test_resolve_for_receipt_uses_installed_store(self, app, blob_store):
        store = blob_store(FakeBlobStore(fail={"gone.jpg"}))

        with app.app_context():
            resolved = resolve_for_receipt(["ok.jpg", "gone.jpg"])

        assert [r.to_dict()["status"] for r in resolved] == ["available", "unavailable"]
        assert store.calls[0] == ("ok.jpg", app.config["ATTACHMENT_URL_TTL_SECONDS"])


class TestHttpBlobStore:

    def _store(self, handler):
        return HttpBlobStore(
            "https://storage.example.com/storage/v1",
            "waybills",
            api_key="service-key",
            transport=httpx.MockTransport(handler),
        )

    def test_sign_posts_ttl_and_absolutizes_url(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"signedURL": "/object/sign/waybills/r1/a.jpg?token=t"})

        url = self._store(handler).sign("r1/a.jpg", 900)

        assert seen["url"] == "https://storage.example.com/storage/v1/object/sign/waybills/r1/a.jpg"
        assert seen["body"] == {"expiresIn": 900}
        assert seen["auth"] == "Bearer service-key"
        assert url == "https://storage.example.com/storage/v1/object/sign/waybills/r1/a.jpg?token=t"

    def test_http_error_becomes_unavailable(self):
        store = self._store(lambda request: httpx.Response(404, json={"error": "not found"}))

        with pytest.raises(AttachmentUnavailable):
            store.sign("r1/missing.jpg", 60)

    def test_missing_signed_url_becomes_unavailable(self):
        store = self._store(lambda request: httpx.Response(200, json={}))

        with pytest.raises(AttachmentUnavailable):
            store.sign("r1/a.jpg", 60)

    def test_transport_error_becomes_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(AttachmentUnavailable):
            self._store(handler).sign("r1/a.jpg", 60)


class TestBuildBlobStore:

    def test_no_url_gives_null_store(self):
        assert isinstance(build_blob_store({"ATTACHMENT_STORAGE_URL": None}), NullBlobStore)

    def test_url_gives_http_store(self):
        store = build_blob_store({
            "ATTACHMENT_STORAGE_URL": "https://storage.example.com/storage/v1/",
            "ATTACHMENT_BUCKET": "receipts",
        })
        try:
            assert isinstance(store, HttpBlobStore)
            assert store.base_url == "https://storage.example.com/storage/v1"
            assert store.bucket == "receipts"
        finally:
            store.close()
