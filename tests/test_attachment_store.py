"""Attachment Store tests: local filesystem store and HTTP store with a mock session."""

import os
from unittest.mock import MagicMock

import pytest
import requests

from qc_platform.core.exceptions import ExternalServiceError
from qc_platform.integrations import attachment_store as store_module
from qc_platform.integrations.attachment_store import (
    HttpAttachmentStore,
    LocalAttachmentStore,
    build_attachment_store,
)


def _response(status, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = status < 400
    resp.json.return_value = body or {}
    return resp


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch):
    monkeypatch.setattr(store_module.time, "sleep", lambda s: None)


class TestLocalStore:
    def test_upload_and_delete(self, tmp_path):
        store = LocalAttachmentStore(str(tmp_path))
        ref = store.upload(b"abc", {"filename": "../weld photo.jpg", "instance_id": 7})

        assert ref.size_bytes == 3
        assert ref.filename == "weld_photo.jpg"
        assert ref.storage_path.startswith("7" + os.sep)
        full = tmp_path / ref.storage_path
        assert full.read_bytes() == b"abc"

        store.delete(ref.storage_path)
        assert not full.exists()

    def test_delete_missing_is_quiet(self, tmp_path):
        LocalAttachmentStore(str(tmp_path)).delete("nope/missing.jpg")


class TestHttpStore:
    def test_upload_returns_remote_path(self):
        session = MagicMock()
        session.request.return_value = _response(201, {"path": "obj/123", "size": 3})
        store = HttpAttachmentStore("https://files.example.com/", api_key="t", session=session, timeout=5)

        ref = store.upload(b"abc", {"filename": "a.jpg", "content_type": "image/jpeg", "instance_id": 1})

        assert ref.storage_path == "obj/123"
        method, url = session.request.call_args.args
        assert (method, url) == ("POST", "https://files.example.com/objects")
        kwargs = session.request.call_args.kwargs
        assert kwargs["timeout"] == 5
        assert kwargs["headers"] == {"Authorization": "Bearer t"}

    def test_retries_server_errors_then_succeeds(self):
        session = MagicMock()
        session.request.side_effect = [_response(503), _response(200, {"path": "p"})]
        store = HttpAttachmentStore("http://s", session=session)
        assert store.upload(b"x", {"filename": "f"}).storage_path == "p"
        assert session.request.call_count == 2

    def test_gives_up_after_retries(self):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("refused")
        store = HttpAttachmentStore("http://s", session=session)
        with pytest.raises(ExternalServiceError):
            store.upload(b"x", {"filename": "f"})
        assert session.request.call_count == 3

    def test_client_error_not_retried(self):
        session = MagicMock()
        session.request.return_value = _response(413)
        store = HttpAttachmentStore("http://s", session=session)
        with pytest.raises(ExternalServiceError):
            store.upload(b"x", {"filename": "f"})
        assert session.request.call_count == 1

    def test_delete_tolerates_404(self):
        session = MagicMock()
        session.request.return_value = _response(404)
        HttpAttachmentStore("http://s", session=session).delete("gone")


def test_build_from_config(tmp_path):
    assert isinstance(build_attachment_store({"ATTACHMENT_STORE_ROOT": str(tmp_path)}), LocalAttachmentStore)
    remote = build_attachment_store({"ATTACHMENT_STORE_URL": "http://s", "ATTACHMENT_STORE_TIMEOUT": 3})
    assert isinstance(remote, HttpAttachmentStore)
    assert remote.timeout == 3
