"""Scroll reader: stream every source document into the document queue."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

import httpx

from esmigrate.client import ClusterClient
from esmigrate.docqueue import DocumentQueue
from esmigrate.errors import ScrollOpenError
from esmigrate.events import ErrorSink, Stage

logger = logging.getLogger(__name__)


class MalformedDocumentError(ValueError):
    pass


@dataclass(frozen=True)
class Document:
    """One source hit. ``source`` is copied verbatim and never inspected."""

    index: str
    type: str
    id: str
    source: dict = field(default_factory=dict)

    @classmethod
    def from_hit(cls, hit: object) -> Document:
        if not isinstance(hit, dict):
            raise MalformedDocumentError(f"hit is not an object: {hit!r}")
        values = {}
        for key in ("_index", "_type", "_id"):
            value = hit.get(key)
            if not isinstance(value, str):
                raise MalformedDocumentError(f"hit has no string {key}: {hit!r}")
            values[key] = value
        source = hit.get("_source")
        if not isinstance(source, dict):
            raise MalformedDocumentError(
                f"hit {values['_index']}/{values['_id']} has no _source object"
            )
        return cls(index=values["_index"], type=values["_type"], id=values["_id"], source=source)


@dataclass(frozen=True)
class ScrollCursor:
    cursor_id: str
    total_hits: int = 0


class ScrollState(Enum):
    OPENING = "opening"
    STREAMING = "streaming"
    TERMINAL = "terminal"


def _page_hits(payload: dict) -> dict:
    hits = payload.get("hits")
    return hits if isinstance(hits, dict) else {}


def _total_hits(payload: dict) -> int:
    total = _page_hits(payload).get("total", 0)
    # 7.x reports {"value": n, "relation": "eq"}
    if isinstance(total, dict):
        total = total.get("value", 0)
    return total if isinstance(total, int) else 0


def decode_hits(hits: list, sink: ErrorSink) -> list[Document]:
    """Turn raw hits into documents, reporting and dropping malformed ones."""
    documents = []
    for hit in hits:
        try:
            documents.append(Document.from_hit(hit))
        except MalformedDocumentError as exc:
            sink.report(Stage.DECODE, str(exc))
    return documents


class ScrollReader:
    """Opens a scan cursor on the source and advances it until exhausted.

    The first response only opens the cursor; it may carry no hits at all
    (scan mode), so an empty first page never ends the stream.
    """

    def __init__(
        self,
        client: ClusterClient,
        pattern: str,
        queue: DocumentQueue[Document],
        sink: ErrorSink,
        page_size: int = 100,
        scroll_time: str = "1m",
    ) -> None:
        self._client = client
        self._pattern = pattern
        self._queue = queue
        self._sink = sink
        self._page_size = page_size
        self._scroll_time = scroll_time
        self.state = ScrollState.OPENING
        self.cursor: ScrollCursor | None = None
        self.documents_read = 0

    def open(self) -> ScrollCursor:
        if self.state is not ScrollState.OPENING:
            raise RuntimeError(f"scroll already {self.state.value}")
        try:
            response = self._client.open_scroll(self._pattern, self._scroll_time, self._page_size)
        except httpx.HTTPError as exc:
            raise ScrollOpenError(f"failed opening scroll: {exc}") from exc
        if not response.is_success:
            raise ScrollOpenError(
                f"failed opening scroll: HTTP {response.status_code}: {response.text}"
            )
        try:
            payload = response.json()
            cursor_id = payload["_scroll_id"]
        except (ValueError, KeyError, TypeError) as exc:
            raise ScrollOpenError(f"malformed scroll response: {exc}") from exc
        if not isinstance(cursor_id, str) or not cursor_id:
            raise ScrollOpenError("scroll response carried no cursor id")

        self.cursor = ScrollCursor(cursor_id=cursor_id, total_hits=_total_hits(payload))
        logger.info("Opened scroll over %d document(s)", self.cursor.total_hits)

        hits = _page_hits(payload).get("hits")
        if isinstance(hits, list) and hits:
            self._enqueue(decode_hits(hits, self._sink))
        self.state = ScrollState.STREAMING
        return self.cursor

    def advance(self) -> bool:
        """Fetch the next page. Returns False once the stream is terminal."""
        if self.state is not ScrollState.STREAMING or self.cursor is None:
            return False

        try:
            response = self._client.continue_scroll(self.cursor.cursor_id, self._scroll_time)
        except httpx.HTTPError as exc:
            return self._fail(f"scroll request failed: {exc}")

        if response.status_code == 404:
            logger.debug("Scroll cursor exhausted")
            return self._finish()
        if not response.is_success:
            return self._fail(f"bad scroll response: HTTP {response.status_code}: {response.text}")

        try:
            payload = response.json()
            hits = payload["hits"]["hits"]
        except (ValueError, KeyError, TypeError) as exc:
            return self._fail(f"malformed scroll page: {exc}")
        if not isinstance(hits, list):
            return self._fail("malformed scroll page: hits is not a list")

        next_id = payload.get("_scroll_id")
        if isinstance(next_id, str) and next_id:
            self.cursor = ScrollCursor(cursor_id=next_id, total_hits=self.cursor.total_hits)

        documents = decode_hits(hits, self._sink)
        if not documents:
            return self._finish()
        self._enqueue(documents)
        return True

    def run(self, should_stop: Callable[[], bool] | None = None) -> int:
        """Drive the reader to its terminal state. Returns documents queued."""
        if self.state is ScrollState.OPENING:
            self.open()
        while self.advance():
            if should_stop is not None and should_stop():
                logger.warning("Stopping scroll early")
                self.state = ScrollState.TERMINAL
                break
        return self.documents_read

    def _enqueue(self, documents: list[Document]) -> None:
        for document in documents:
            self._queue.put(document)
            self.documents_read += 1

    def _finish(self) -> bool:
        self.state = ScrollState.TERMINAL
        return False

    def _fail(self, message: str) -> bool:
        self._sink.report(Stage.SCROLL, message)
        return self._finish()
