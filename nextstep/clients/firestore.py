"""
Cloud Firestore REST client.

Covers the document operations the site needs: get, full set, partial update,
delete, field-filtered queries with cursors, and count aggregation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx

from nextstep.core.config import FirebaseSettings
from nextstep.core.errors import (
    DocumentNotFoundError,
    StoreDeniedError,
    StoreError,
    StoreUnavailableError,
)

_SIMPLE_FIELD = re.compile(r"^[A-Za-z_][A-Za-z_0-9]*$")

_OPERATORS = {
    "==": "EQUAL",
    "!=": "NOT_EQUAL",
    "<": "LESS_THAN",
    "<=": "LESS_THAN_OR_EQUAL",
    ">": "GREATER_THAN",
    ">=": "GREATER_THAN_OR_EQUAL",
    "array-contains": "ARRAY_CONTAINS",
    "in": "IN",
}

FieldFilter = Tuple[str, str, Any]
OrderBy = Tuple[str, str]


@dataclass(frozen=True, slots=True)
class DocumentRef:
    """Fully-qualified document name, encoded as a Firestore reference value."""

    path: str


@dataclass(slots=True)
class StoredDocument:
    """A document returned by a query."""

    id: str
    name: str
    data: Dict[str, Any] = field(default_factory=dict)


def encode_value(value: Any) -> Dict[str, Any]:
    """Encode a Python value as a Firestore typed value."""
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
    if isinstance(value, datetime):
        return {"timestampValue": value.isoformat()}
    if isinstance(value, DocumentRef):
        return {"referenceValue": value.path}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(item) for item in value]}}
    raise TypeError(f"Type {type(value)!r} not supported by the document store")


def encode_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: encode_value(value) for key, value in data.items()}


def decode_value(value: Dict[str, Any]) -> Any:
    """Decode a Firestore typed value into plain Python data."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields") or {})
    if "arrayValue" in value:
        return [decode_value(item) for item in value["arrayValue"].get("values") or []]
    for key in ("stringValue", "timestampValue", "referenceValue", "bytesValue"):
        if key in value:
            return value[key]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])
    raise ValueError(f"Unrecognised Firestore value: {value!r}")


def decode_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}


def _quote_field_path(path: str) -> str:
    parts = []
    for part in path.split("."):
        if part == "__name__" or _SIMPLE_FIELD.match(part):
            parts.append(part)
        else:
            parts.append("`" + part.replace("`", "\\`") + "`")
    return ".".join(parts)


def _status_code(payload: Any, default: str) -> str:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("status"):
            return str(error["status"]).lower().replace("_", "-")
    return default


def _store_error(response: httpx.Response) -> StoreError:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, list) and payload:
        payload = payload[0]
    message = response.text or f"Document store returned HTTP {response.status_code}"
    if response.status_code == httpx.codes.FORBIDDEN:
        return StoreDeniedError(message, code=_status_code(payload, "permission-denied"))
    if response.status_code == httpx.codes.UNAUTHORIZED:
        return StoreDeniedError(message, code=_status_code(payload, "unauthenticated"))
    if response.status_code == httpx.codes.NOT_FOUND:
        return DocumentNotFoundError(message)
    if response.status_code == httpx.codes.TOO_MANY_REQUESTS or response.status_code >= 500:
        return StoreUnavailableError(message, code=_status_code(payload, "unavailable"))
    return StoreError(message, code=_status_code(payload, "unknown"))


_MALFORMED_BODY = (ValueError, KeyError, TypeError, AttributeError)


def _malformed_body(response: httpx.Response, exc: Exception) -> StoreUnavailableError:
    return StoreUnavailableError(
        f"Document store returned an unreadable HTTP {response.status_code} body: {exc}"
    )


class FirestoreClient:
    """Thin async wrapper over the Firestore v1 REST API."""

    def __init__(
        self,
        settings: FirebaseSettings,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._settings = settings
        self._timeout = timeout
        self._transport = transport
        self._database_path = (
            f"projects/{settings.project_id}/databases/{settings.database_id}/documents"
        )
        self._base_url = f"{settings.firestore_url.rstrip('/')}/{self._database_path}"

    def document_name(self, collection: str, doc_id: str) -> str:
        """Fully-qualified resource name, as used by reference values and cursors."""
        return f"{self._database_path}/{collection}/{doc_id}"

    async def _request(
        self,
        method: str,
        url: str,
        *,
        id_token: Optional[str] = None,
        params: Any = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {id_token}"} if id_token else {}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                return await client.request(
                    method, url, headers=headers, params=params, json=json
                )
        except httpx.HTTPError as exc:
            raise StoreUnavailableError(f"Document store unreachable: {exc}") from exc

    async def get_document(
        self, collection: str, doc_id: str, *, id_token: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Return the document's fields, or None when it does not exist."""
        response = await self._request(
            "GET", f"{self._base_url}/{collection}/{doc_id}", id_token=id_token
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.status_code != httpx.codes.OK:
            raise _store_error(response)
        try:
            return decode_fields(response.json().get("fields") or {})
        except _MALFORMED_BODY as exc:
            raise _malformed_body(response, exc) from exc

    async def set_document(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        *,
        id_token: Optional[str] = None,
    ) -> None:
        """Create or fully replace a document."""
        response = await self._request(
            "PATCH",
            f"{self._base_url}/{collection}/{doc_id}",
            id_token=id_token,
            json={"fields": encode_fields(data)},
        )
        if response.status_code != httpx.codes.OK:
            raise _store_error(response)

    async def update_document(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        *,
        id_token: Optional[str] = None,
    ) -> None:
        """Merge ``data`` into an existing document; fails if it does not exist."""
        params: List[Tuple[str, str]] = [
            ("updateMask.fieldPaths", _quote_field_path(key)) for key in data
        ]
        params.append(("currentDocument.exists", "true"))
        response = await self._request(
            "PATCH",
            f"{self._base_url}/{collection}/{doc_id}",
            id_token=id_token,
            params=params,
            json={"fields": encode_fields(data)},
        )
        if response.status_code != httpx.codes.OK:
            raise _store_error(response)

    async def delete_document(
        self, collection: str, doc_id: str, *, id_token: Optional[str] = None
    ) -> None:
        response = await self._request(
            "DELETE", f"{self._base_url}/{collection}/{doc_id}", id_token=id_token
        )
        if response.status_code != httpx.codes.OK:
            raise _store_error(response)

    def _structured_query(
        self,
        collection: str,
        *,
        filters: Sequence[FieldFilter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
        start_after: Optional[Sequence[Any]] = None,
        end_before: Optional[Sequence[Any]] = None,
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {"from": [{"collectionId": collection}]}
        where = self._build_where(filters)
        if where:
            query["where"] = where
        if order_by:
            query["orderBy"] = [
                {
                    "field": {"fieldPath": _quote_field_path(path)},
                    "direction": "DESCENDING" if direction.lower() == "desc" else "ASCENDING",
                }
                for path, direction in order_by
            ]
        if start_after is not None:
            query["startAt"] = {
                "values": [encode_value(value) for value in start_after],
                "before": False,
            }
        if end_before is not None:
            query["endAt"] = {
                "values": [encode_value(value) for value in end_before],
                "before": True,
            }
        if limit is not None:
            query["limit"] = limit
        return query

    @staticmethod
    def _build_where(filters: Iterable[FieldFilter]) -> Optional[Dict[str, Any]]:
        clauses: List[Dict[str, Any]] = []
        for path, op, value in filters:
            field_ref = {"fieldPath": _quote_field_path(path)}
            if value is None and op in ("==", "!="):
                clauses.append(
                    {
                        "unaryFilter": {
                            "op": "IS_NULL" if op == "==" else "IS_NOT_NULL",
                            "field": field_ref,
                        }
                    }
                )
                continue
            if op not in _OPERATORS:
                raise ValueError(f"Unsupported query operator: {op}")
            clauses.append(
                {
                    "fieldFilter": {
                        "field": field_ref,
                        "op": _OPERATORS[op],
                        "value": encode_value(value),
                    }
                }
            )
        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return {"compositeFilter": {"op": "AND", "filters": clauses}}

    async def run_query(
        self,
        collection: str,
        *,
        filters: Sequence[FieldFilter] = (),
        order_by: Sequence[OrderBy] = (),
        limit: Optional[int] = None,
        start_after: Optional[Sequence[Any]] = None,
        end_before: Optional[Sequence[Any]] = None,
        id_token: Optional[str] = None,
    ) -> List[StoredDocument]:
        """Run a structured query against a top-level collection."""
        body = {
            "structuredQuery": self._structured_query(
                collection,
                filters=filters,
                order_by=order_by,
                limit=limit,
                start_after=start_after,
                end_before=end_before,
            )
        }
        response = await self._request(
            "POST", f"{self._base_url}:runQuery", id_token=id_token, json=body
        )
        if response.status_code != httpx.codes.OK:
            raise _store_error(response)

        documents: List[StoredDocument] = []
        try:
            for entry in response.json():
                document = entry.get("document")
                if not document:
                    continue
                name = document["name"]
                documents.append(
                    StoredDocument(
                        id=name.rsplit("/", 1)[-1],
                        name=name,
                        data=decode_fields(document.get("fields") or {}),
                    )
                )
        except _MALFORMED_BODY as exc:
            raise _malformed_body(response, exc) from exc
        return documents

    async def count(
        self,
        collection: str,
        *,
        filters: Sequence[FieldFilter] = (),
        id_token: Optional[str] = None,
    ) -> int:
        body = {
            "structuredAggregationQuery": {
                "structuredQuery": self._structured_query(collection, filters=filters),
                "aggregations": [{"alias": "total", "count": {}}],
            }
        }
        response = await self._request(
            "POST", f"{self._base_url}:runAggregationQuery", id_token=id_token, json=body
        )
        if response.status_code != httpx.codes.OK:
            raise _store_error(response)
        try:
            for entry in response.json():
                result = entry.get("result")
                if result:
                    total = result.get("aggregateFields", {}).get("total", {"integerValue": "0"})
                    return int(decode_value(total))
        except _MALFORMED_BODY as exc:
            raise _malformed_body(response, exc) from exc
        return 0


__all__ = [
    "DocumentRef",
    "FirestoreClient",
    "StoredDocument",
    "decode_fields",
    "decode_value",
    "encode_fields",
    "encode_value",
]
