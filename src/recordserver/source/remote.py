"""
Remote record source.

Proxies queries and updates to another JSON:API server over httpx. Updates
are always sent as one PATCH /batch request so a transform stays atomic on the
remote side. Error responses surface as UpstreamError with the remote status.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from ..core.errors import UpstreamError, ValidationError
from ..core.records import (
    AttributeFilter,
    AttributeSort,
    FindRecord,
    FindRecords,
    FindRelatedRecord,
    FindRelatedRecords,
    Identity,
    QueryExpression,
    RequestOptions,
    Transform,
)
from ..core.schema import Schema
from ..jsonapi.serializer import JSONAPISerializer
from .base import Source

logger = logging.getLogger(__name__)

JSONAPI_MEDIA_TYPE = "application/vnd.api+json"
FORWARDED_HEADERS = ("authorization", "x-client-id")


class RemoteSource(Source):
    """
    Source backed by a remote JSON:API server.

    Usage:
        source = RemoteSource(schema, "http://records:8000")
        await source.activate()
        planets = await source.query(FindRecords("planet"))
    """

    def __init__(
        self,
        schema: Schema,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        name: Optional[str] = None,
    ):
        """
        Initialize remote source.

        Args:
            schema: Schema shared with the remote server
            base_url: Root URL of the remote JSON:API routes
            client: Preconfigured client (owned by the caller)
            timeout: HTTP request timeout in seconds
        """
        super().__init__(schema, name)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.serializer = JSONAPISerializer(schema)
        self._client = client
        self._owns_client = client is None

    async def _activate(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)

    async def _deactivate(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        options: RequestOptions,
        params: Optional[dict[str, str]] = None,
        json: Any = None,
    ) -> Any:
        if self._client is None:
            raise RuntimeError(f"Source '{self.name}' is not activated")

        headers = {"Accept": JSONAPI_MEDIA_TYPE}
        if json is not None:
            headers["Content-Type"] = JSONAPI_MEDIA_TYPE
        for key, value in options.headers.items():
            if key.lower() in FORWARDED_HEADERS:
                headers[key] = value

        try:
            response = await self._client.request(
                method, f"{self.base_url}{path}", params=params, json=json, headers=headers
            )
        except httpx.RequestError as e:
            raise UpstreamError(502, f"Remote source unreachable: {e}") from e

        if response.status_code >= 400:
            body = _json_or_none(response)
            message = response.text
            if isinstance(body, dict) and body.get("errors"):
                message = body["errors"][0].get("title") or message
            raise UpstreamError(response.status_code, message, body)

        logger.debug(f"{method} {path} -> {response.status_code}")
        return _json_or_none(response)

    # ------------------------------------------------------------------
    # Source
    # ------------------------------------------------------------------

    async def _query(self, expression: QueryExpression, options: RequestOptions) -> Any:
        if isinstance(expression, FindRecord):
            document = await self._request("GET", self._member(expression.record), options)
            return self.serializer.deserialize(document)

        if isinstance(expression, FindRecords):
            if expression.ids is not None:
                return await self._find_by_ids(expression, options)
            document = await self._request(
                "GET",
                f"/{self.serializer.resource_type(expression.type)}",
                options,
                params=self._params(expression.type, expression.filter, expression.sort),
            )
            return self.serializer.deserialize(document) or []

        if isinstance(expression, FindRelatedRecord):
            path = self._related(expression.record, expression.relationship)
            return self.serializer.deserialize(await self._request("GET", path, options))

        if isinstance(expression, FindRelatedRecords):
            rel = self.schema.get_relationship(expression.record.type, expression.relationship)
            if rel is None:
                raise ValidationError(f"Unknown relationship: {expression.record.type}.{expression.relationship}")
            document = await self._request(
                "GET",
                self._related(expression.record, expression.relationship),
                options,
                params=self._params(rel.targets[0], expression.filter, expression.sort),
            )
            return self.serializer.deserialize(document) or []

        raise ValidationError(f"Unsupported query expression: {expression!r}")

    async def _update(self, transform: Transform, options: RequestOptions) -> list[Any]:
        document = {"operations": self.serializer.serialize_operations(transform.operations)}
        response = await self._request("PATCH", "/batch", options, json=document)
        results = []
        for entry in (response or {}).get("operations", []):
            data = entry.get("data")
            if isinstance(data, dict) and data.get("id") is not None:
                results.append(self.serializer.deserialize_resource(data))
            else:
                results.append(None)
        return results

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _find_by_ids(self, expression: FindRecords, options: RequestOptions) -> list[Any]:
        async def fetch(id: str):
            try:
                return await self._query(FindRecord(Identity(expression.type, id)), options)
            except UpstreamError as e:
                if e.status_code == 404:
                    return None
                raise

        records = await asyncio.gather(*(fetch(id) for id in expression.ids))
        return [r for r in records if r is not None]

    def _member(self, identity: Identity) -> str:
        return f"/{self.serializer.resource_type(identity.type)}/{identity.id}"

    def _related(self, identity: Identity, relationship: str) -> str:
        return f"{self._member(identity)}/{self.serializer.resource_relationship(identity.type, relationship)}"

    def _params(self, type: str, filters: list[AttributeFilter], sorts: list[AttributeSort]) -> dict[str, str]:
        params: dict[str, str] = {}
        for term in filters:
            if term.op != "eq":
                raise ValidationError(f"Remote source only supports equality filters, got {term.op!r}")
            params[f"filter[{self.serializer.resource_attribute(type, term.field)}]"] = _query_value(term.value)
        if sorts:
            params["sort"] = ",".join(
                ("-" if term.dir == "desc" else "") + self.serializer.resource_attribute(type, term.field)
                for term in sorts
            )
        return params


def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _json_or_none(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None
