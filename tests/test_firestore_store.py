from __future__ import annotations

import json

import httpx
import pytest

from biblecloud.errors import StoreAuthorizationError, StoreError
from biblecloud.models import AuthUser
from biblecloud.stores.firestore import (
    FirestoreConfig,
    FirestoreStore,
    decode_fields,
    encode_fields,
)

USER = AuthUser(uid="uid-1", email="lector@example.com", id_token="token-abc")
COLLECTION_PATH = "/v1/projects/demo/databases/(default)/documents/users/uid-1/readChapters"


def _store(handler):
    return FirestoreStore(FirestoreConfig(project_id="demo"), transport=httpx.MockTransport(handler))


def _document(doc_id, **data):
    return {
        "name": f"projects/demo/databases/(default)/documents/users/uid-1/readChapters/{doc_id}",
        "fields": encode_fields(data),
    }


def test_encode_decode_read_record_fields():
    payload = {
        "id": "juan-3",
        "latestReadTimestamp": "2024-05-01T08:00:00.000Z",
        "allTimestamps": ["2024-05-01T08:00:00.000Z"],
        "notes": "",
    }
    encoded = encode_fields(payload)

    assert encoded["allTimestamps"] == {
        "arrayValue": {"values": [{"stringValue": "2024-05-01T08:00:00.000Z"}]}
    }
    assert decode_fields(encoded) == payload


def test_encode_empty_array_and_scalars():
    encoded = encode_fields({"list": [], "count": 3, "flag": True, "missing": None})

    assert encoded["list"] == {"arrayValue": {}}
    assert encoded["count"] == {"integerValue": "3"}
    assert encoded["flag"] == {"booleanValue": True}
    assert decode_fields(encoded) == {"list": [], "count": 3, "flag": True, "missing": None}


def test_list_documents_follows_pagination_and_sends_token():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        assert request.headers["Authorization"] == "Bearer token-abc"
        if "pageToken" not in request.url.params:
            return httpx.Response(
                200,
                json={"documents": [_document("juan-3", id="juan-3")], "nextPageToken": "next"},
            )
        return httpx.Response(200, json={"documents": [_document("rut-1", id="rut-1")]})

    documents = _store(handler).list_documents(USER, "readChapters")

    assert [doc.doc_id for doc in documents] == ["juan-3", "rut-1"]
    assert documents[0].data == {"id": "juan-3"}
    assert len(seen) == 2
    assert seen[0].url.path == COLLECTION_PATH
    assert seen[1].url.params["pageToken"] == "next"


def test_list_documents_of_empty_collection():
    store = _store(lambda request: httpx.Response(200, json={}))

    assert store.list_documents(USER, "readChapters") == []


def test_get_missing_document_returns_none():
    store = _store(lambda request: httpx.Response(404, json={"error": {"code": 404}}))

    assert store.get_document(USER, "readChapters", "juan-3") is None


def test_set_document_patches_full_document():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["method"] = request.method
        captured["path"] = request.url.path
        captured["params"] = dict(request.url.params)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={})

    _store(handler).set_document(USER, "readChapters", "juan-3", {"id": "juan-3", "notes": ""})

    assert captured["method"] == "PATCH"
    assert captured["path"] == f"{COLLECTION_PATH}/juan-3"
    assert captured["params"] == {}
    assert captured["body"] == {"fields": {"id": {"stringValue": "juan-3"}, "notes": {"stringValue": ""}}}


def test_update_document_masks_fields_and_requires_existing():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["params"] = request.url.params
        return httpx.Response(200, json={})

    _store(handler).update_document(USER, "readChapters", "juan-3", {"notes": "hola"})

    assert captured["params"].get_list("updateMask.fieldPaths") == ["notes"]
    assert captured["params"]["currentDocument.exists"] == "true"


def test_delete_document_sends_delete():
    methods = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append((request.method, request.url.path))
        return httpx.Response(200, json={})

    _store(handler).delete_document(USER, "readChapters", "juan-3")

    assert methods == [("DELETE", f"{COLLECTION_PATH}/juan-3")]


def test_http_errors_raise_store_error():
    store = _store(lambda request: httpx.Response(403, text="PERMISSION_DENIED"))

    with pytest.raises(StoreError) as excinfo:
        store.list_documents(USER, "readChapters")
    assert "403" in str(excinfo.value)


def test_network_errors_raise_store_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    with pytest.raises(StoreError):
        _store(handler).delete_document(USER, "readChapters", "juan-3")


def test_project_id_is_required():
    with pytest.raises(ValueError):
        FirestoreStore(FirestoreConfig(project_id=""))


def test_rejected_token_raises_authorization_error():
    store = _store(lambda request: httpx.Response(401, json={"error": {"status": "UNAUTHENTICATED"}}))

    with pytest.raises(StoreAuthorizationError) as excinfo:
        store.get_document(USER, "readChapters", "juan-3")
    assert "401" in str(excinfo.value)
