"""Thin HTTP client for one Elasticsearch-compatible cluster."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)

NDJSON = "application/x-ndjson"


class ClusterClient:
    """One method per endpoint the migration touches.

    Methods return the raw ``httpx.Response``; callers decide which status
    codes count as success. Transport failures surface as ``httpx.HTTPError``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ClusterClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- metadata --

    def get_mapping(self, pattern: str) -> httpx.Response:
        return self._client.get(f"/{pattern}/_mapping")

    def get_settings(self) -> httpx.Response:
        return self._client.get("/_all/_settings")

    def health(self) -> httpx.Response:
        return self._client.get("/_cluster/health")

    def create_index(self, name: str, body: dict) -> httpx.Response:
        return self._client.post(f"/{name}", json=body)

    def delete_index(self, name: str) -> httpx.Response:
        return self._client.delete(f"/{name}")

    def put_settings(self, name: str, body: dict) -> httpx.Response:
        return self._client.put(f"/{name}/_settings", json=body)

    # -- documents --

    def open_scroll(self, pattern: str, scroll_time: str, size: int) -> httpx.Response:
        return self._client.get(
            f"/{pattern}/_search",
            params={"search_type": "scan", "scroll": scroll_time, "size": size},
        )

    def continue_scroll(self, cursor_id: str, scroll_time: str) -> httpx.Response:
        return self._client.post(
            "/_search/scroll",
            params={"scroll": scroll_time},
            content=cursor_id.encode("utf-8"),
        )

    def bulk(self, payload: bytes) -> httpx.Response:
        logger.debug("POST %s/_bulk (%d bytes)", self._base_url, len(payload))
        return self._client.post(
            "/_bulk",
            content=payload,
            headers={"Content-Type": NDJSON},
        )
