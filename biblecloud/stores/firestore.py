from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx

from biblecloud.errors import StoreAuthorizationError, StoreError
from biblecloud.models import AuthUser

from . import DocumentStore, StoredDocument

logger = logging.getLogger(__name__)

FIRESTORE_BASE_URL = "https://firestore.googleapis.com/v1/"
_PAGE_SIZE = 300


@dataclass(frozen=True)
class FirestoreConfig:
    project_id: str
    database: str = "(default)"
    base_url: str = FIRESTORE_BASE_URL
    timeout: float = 15.0
    verify_ssl: bool = True


def encode_value(value: Any) -> Dict[str, Any]:
    """Encode a Python value in the Firestore REST typed-value format."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        values = [encode_value(item) for item in value]
        return {"arrayValue": {"values": values} if values else {}}
    raise TypeError(f"Unsupported Firestore value: {type(value).__name__}")


def encode_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(key): encode_value(value) for key, value in data.items()}


def decode_value(payload: Mapping[str, Any]) -> Any:
    if "nullValue" in payload:
        return None
    if "booleanValue" in payload:
        return bool(payload["booleanValue"])
    if "integerValue" in payload:
        return int(payload["integerValue"])
    if "doubleValue" in payload:
        return float(payload["doubleValue"])
    if "stringValue" in payload:
        return payload["stringValue"]
    if "timestampValue" in payload:
        return payload["timestampValue"]
    if "referenceValue" in payload:
        return payload["referenceValue"]
    if "arrayValue" in payload:
        return [decode_value(item) for item in payload["arrayValue"].get("values", [])]
    if "mapValue" in payload:
        return decode_fields(payload["mapValue"].get("fields", {}))
    raise ValueError(f"Unsupported Firestore value: {sorted(payload)}")


def decode_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}


def _document_id(name: str) -> str:
    return name.rsplit("/", 1)[-1]


class FirestoreStore(DocumentStore):
    """Document store backed by the Cloud Firestore REST API."""

    def __init__(self, config: FirestoreConfig, *, transport: Optional[httpx.BaseTransport] = None) -> None:
        if not config.project_id:
            raise ValueError("Firebase project ID is required")
        self._config = config
        self._transport = transport
        base = (config.base_url or FIRESTORE_BASE_URL).rstrip("/")
        self._client_base_url = f"{base}/"

    def _collection_path(self, user: AuthUser, collection: str) -> str:
        return (
            f"projects/{quote(self._config.project_id, safe='')}"
            f"/databases/{quote(self._config.database, safe='()')}"
            f"/documents/users/{quote(user.uid, safe='')}/{quote(collection, safe='')}"
        )

    def _document_path(self, user: AuthUser, collection: str, doc_id: str) -> str:
        return f"{self._collection_path(user, collection)}/{quote(doc_id, safe='')}"

    def _open_client(self, user: AuthUser) -> httpx.Client:
        headers = {"Accept": "application/json"}
        if user.id_token:
            headers["Authorization"] = f"Bearer {user.id_token}"
        return httpx.Client(
            base_url=self._client_base_url,
            headers=headers,
            timeout=self._config.timeout,
            verify=self._config.verify_ssl,
            transport=self._transport,
        )

    def _request(
        self,
        user: AuthUser,
        method: str,
        path: str,
        *,
        params: Optional[Sequence[Tuple[str, str]]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Optional[Dict[str, Any]]:
        try:
            with self._open_client(user) as client:
                response = client.request(method, path, params=params, json=json_body)
                if allow_missing and response.status_code == 404:
                    return None
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            detail = (exc.response.text or "").strip()[:200]
            message = f"Firestore {method} failed with status {status}"
            if detail:
                message = f"{message}: {detail}"
            if status == 401:
                raise StoreAuthorizationError(message) from exc
            raise StoreError(message) from exc
        except httpx.HTTPError as exc:
            raise StoreError(f"Firestore {method} failed: {exc}") from exc

        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise StoreError(f"Firestore returned invalid JSON: {exc}") from exc
        return payload if isinstance(payload, dict) else {}

    def list_documents(self, user: AuthUser, collection: str) -> List[StoredDocument]:
        documents: List[StoredDocument] = []
        page_token: Optional[str] = None
        path = self._collection_path(user, collection)
        while True:
            params = [("pageSize", str(_PAGE_SIZE))]
            if page_token:
                params.append(("pageToken", page_token))
            payload = self._request(user, "GET", path, params=params) or {}
            for entry in payload.get("documents", []):
                name = str(entry.get("name") or "")
                try:
                    data = decode_fields(entry.get("fields", {}))
                except (TypeError, ValueError) as exc:
                    raise StoreError(f"Unable to decode document {name}: {exc}") from exc
                documents.append(StoredDocument(_document_id(name), data))
            page_token = payload.get("nextPageToken")
            if not page_token:
                break
        logger.debug("Listed %d documents in %s", len(documents), path)
        return documents

    def get_document(self, user: AuthUser, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        payload = self._request(
            user, "GET", self._document_path(user, collection, doc_id), allow_missing=True
        )
        if payload is None:
            return None
        try:
            return decode_fields(payload.get("fields", {}))
        except (TypeError, ValueError) as exc:
            raise StoreError(f"Unable to decode document {doc_id}: {exc}") from exc

    def set_document(self, user: AuthUser, collection: str, doc_id: str, data: Mapping[str, Any]) -> None:
        self._request(
            user,
            "PATCH",
            self._document_path(user, collection, doc_id),
            json_body={"fields": encode_fields(data)},
        )

    def update_document(self, user: AuthUser, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        params = [("updateMask.fieldPaths", key) for key in fields]
        params.append(("currentDocument.exists", "true"))
        self._request(
            user,
            "PATCH",
            self._document_path(user, collection, doc_id),
            params=params,
            json_body={"fields": encode_fields(fields)},
        )

    def delete_document(self, user: AuthUser, collection: str, doc_id: str) -> None:
        self._request(user, "DELETE", self._document_path(user, collection, doc_id))
