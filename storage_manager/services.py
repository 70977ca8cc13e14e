from __future__ import annotations
"""Signed HTTP access to a single S3-compatible bucket."""
from datetime import datetime, timezone
import logging
from typing import Callable, Optional
from urllib.parse import quote

import httpx

from .errors import ProtocolError, TransportError
from .listing import parse_list_response
from .models import Credentials, EndpointConfig, ObjectRecord
from .signing import canonical_query_string, sign

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_KEYS = 1000
DEFAULT_TIMEOUT = 30.0

CancelFn = Callable[[], bool]


class TransferCancelledError(RuntimeError):
    """Raised when an operation is cancelled by the caller."""


def check_cancelled(cancel_requested: Optional[CancelFn]) -> None:
    if cancel_requested and cancel_requested():
        raise TransferCancelledError("Transfer cancelled by user")


_DOT_SEGMENTS = {".": "%2E", "..": "%2E%2E"}


def encode_key(key: str) -> str:
    """Percent-encode each path segment of ``key``.

    Dot segments become ``%2E`` / ``%2E%2E`` so the path sent on the wire
    is exactly the signed path.
    """
    return "/".join(
        _DOT_SEGMENTS.get(segment) or quote(segment, safe="~")
        for segment in key.split("/")
    )


def request_host(config: EndpointConfig) -> str:
    if config.path_style:
        return config.endpoint
    return f"{config.bucket}.{config.endpoint}"


def bucket_prefix(config: EndpointConfig) -> str:
    return f"/{config.bucket}" if config.path_style else ""


def base_url(config: EndpointConfig) -> str:
    scheme = "https" if config.use_ssl else "http"
    return f"{scheme}://{request_host(config)}"


def object_url(config: EndpointConfig, key: str) -> str:
    """Return the direct URL for ``key``; the CDN override wins when set. No I/O."""
    if config.cdn_url:
        return f"{config.cdn_url.rstrip('/')}/{encode_key(key)}"
    return f"{base_url(config)}{bucket_prefix(config)}/{encode_key(key)}"


class ObjectStoreClient:
    """Issues SigV4-signed list/put/delete requests against one bucket.

    Virtual-hosted addressing sends requests to ``<bucket>.<endpoint>``;
    path-style addressing sends them to ``<endpoint>`` with ``/<bucket>``
    prefixed to every URI.
    """

    def __init__(
        self,
        config: EndpointConfig,
        credentials: Credentials,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._config = config.normalized()
        self._credentials = credentials
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def config(self) -> EndpointConfig:
        return self._config

    @property
    def host(self) -> str:
        return request_host(self._config)

    @property
    def bucket_prefix(self) -> str:
        return bucket_prefix(self._config)

    @property
    def base_url(self) -> str:
        return base_url(self._config)

    def object_uri(self, key: str) -> str:
        return f"{self.bucket_prefix}/{encode_key(key)}"

    def object_url(self, key: str) -> str:
        return object_url(self._config, key)

    async def list_objects(
        self,
        prefix: str = "",
        max_keys: int = DEFAULT_MAX_KEYS,
        *,
        cancel_requested: Optional[CancelFn] = None,
    ) -> list[ObjectRecord]:
        query = {"list-type": "2", "max-keys": str(max_keys)}
        if prefix:
            query["prefix"] = prefix
        response = await self._send(
            "GET",
            self.bucket_prefix or "/",
            query=query,
            cancel_requested=cancel_requested,
        )
        records = parse_list_response(response.content, url_for_key=self.object_url)
        LOGGER.debug("Listed %d object(s) under prefix '%s'", len(records), prefix)
        return records

    async def upload_object(
        self,
        key: str,
        data: bytes,
        content_type: str,
        *,
        cancel_requested: Optional[CancelFn] = None,
    ) -> None:
        await self._send(
            "PUT",
            self.object_uri(key),
            headers={"Content-Type": content_type, "Content-Length": str(len(data))},
            payload=data,
            cancel_requested=cancel_requested,
        )

    async def delete_object(
        self,
        key: str,
        *,
        cancel_requested: Optional[CancelFn] = None,
    ) -> None:
        await self._send("DELETE", self.object_uri(key), cancel_requested=cancel_requested)

    async def test_connection(self, *, cancel_requested: Optional[CancelFn] = None) -> bool:
        await self.list_objects("", 1, cancel_requested=cancel_requested)
        return True

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "ObjectStoreClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _send(
        self,
        method: str,
        uri: str,
        *,
        query: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        payload: bytes = b"",
        cancel_requested: Optional[CancelFn] = None,
    ) -> httpx.Response:
        check_cancelled(cancel_requested)
        request_headers = {"Host": self.host, **(headers or {})}
        signed = sign(
            method,
            uri,
            query,
            request_headers,
            payload,
            self._clock(),
            self._credentials,
            self._config.region,
        )
        url = f"{self.base_url}{uri}"
        query_string = canonical_query_string(query)
        if query_string:
            url = f"{url}?{query_string}"

        LOGGER.debug("%s %s%s", method, self.host, uri)
        try:
            response = await self._http.request(
                method,
                url,
                headers=signed,
                content=payload if payload else None,
            )
        except httpx.InvalidURL as exc:
            raise TransportError(f"Invalid URL: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or exc.__class__.__name__) from exc

        LOGGER.debug("%s %s%s -> %d", method, self.host, uri, response.status_code)
        if not 200 <= response.status_code < 300:
            body = response.text or "Unknown error"
            raise ProtocolError(response.status_code, body)
        return response
