"""Bulk writer pool: drain the document queue into size-bounded bulk requests."""

from __future__ import annotations

import json
import logging
import threading
from enum import Enum

import httpx

from esmigrate.client import ClusterClient
from esmigrate.docqueue import DocumentQueue
from esmigrate.events import ErrorSink, Stage
from esmigrate.scroll import Document

logger = logging.getLogger(__name__)

# Keep each bulk request under the destination's request size limit
FLUSH_BYTES = 100_000_000

REQUIRED_FIELDS = ("index", "type", "id")


class BulkFailurePolicy(str, Enum):
    DROP = "drop"
    ABORT = "abort"


class BulkBatch:
    """NDJSON buffer owned by a single worker."""

    def __init__(self) -> None:
        self._buffer = bytearray()
        self.count = 0

    def __len__(self) -> int:
        return len(self._buffer)

    def __bool__(self) -> bool:
        return self.count > 0

    def append(self, record: bytes) -> None:
        self._buffer.extend(record)
        self.count += 1

    def payload(self) -> bytes:
        return bytes(self._buffer)

    def reset(self) -> None:
        self._buffer.clear()
        self.count = 0


def missing_fields(document: Document) -> list[str]:
    return [name for name in REQUIRED_FIELDS if not getattr(document, name)]


def serialize_document(document: Document) -> bytes:
    """Encode the action line and the source line for one bulk ``create``."""
    action = {"create": {"_index": document.index, "_type": document.type, "_id": document.id}}
    action_line = json.dumps(action, ensure_ascii=False)
    source_line = json.dumps(document.source, ensure_ascii=False)
    return f"{action_line}\n{source_line}\n".encode("utf-8")


class BulkWriterPool:
    """Fixed set of worker threads sharing one document queue.

    Encoding happens in parallel, each worker into its own batch. Writes do
    not: every bulk POST is made while holding a single pool-wide lock, so at
    most one request is in flight against the destination.

    A failed flush is retried ``retries`` times, then handled according to
    ``failure_policy``: ``DROP`` reports it and loses the batch, ``ABORT``
    reports it and discards every later flush.
    """

    def __init__(
        self,
        client: ClusterClient,
        queue: DocumentQueue[Document],
        sink: ErrorSink,
        workers: int = 1,
        flush_bytes: int = FLUSH_BYTES,
        failure_policy: BulkFailurePolicy = BulkFailurePolicy.DROP,
        retries: int = 0,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._client = client
        self._queue = queue
        self._sink = sink
        self._workers = workers
        self._flush_bytes = flush_bytes
        self._failure_policy = BulkFailurePolicy(failure_policy)
        self._retries = max(0, retries)
        self._flush_lock = threading.Lock()
        self._threads: list[threading.Thread] = []
        self.aborted = threading.Event()
        self.documents_written = 0
        self.flushes = 0

    def start(self) -> None:
        for i in range(self._workers):
            thread = threading.Thread(target=self._work, name=f"bulk-writer-{i}", daemon=True)
            self._threads.append(thread)
            thread.start()
        logger.debug("Started %d bulk writer(s)", self._workers)

    def join(self, timeout: float | None = None) -> None:
        """Wait for every worker to drain the closed queue and exit."""
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = [t for t in self._threads if t.is_alive()]

    def _work(self) -> None:
        batch = BulkBatch()
        for document in self._queue:
            try:
                self.add(batch, document)
            except Exception as exc:
                logger.exception("Bulk writer failed on %s/%s", document.index, document.id)
                self._sink.report(Stage.BULK, f"writer error on {document.index}/{document.id}: {exc}")
        try:
            self.flush(batch)
        except Exception as exc:
            logger.exception("Final bulk flush failed")
            self._sink.report(Stage.BULK, f"writer error on final flush: {exc}")

    def add(self, batch: BulkBatch, document: Document) -> None:
        """Append one document to ``batch``, flushing first if it would overflow."""
        if self.aborted.is_set():
            return
        missing = missing_fields(document)
        if missing:
            self._sink.report(
                Stage.VALIDATE,
                f"document {document.index!r}/{document.id!r} missing {', '.join(missing)}",
            )
            return
        try:
            record = serialize_document(document)
        except (TypeError, ValueError) as exc:
            self._sink.report(Stage.ENCODE, f"failed encoding {document.index}/{document.id}: {exc}")
            return

        if batch and len(batch) + len(record) > self._flush_bytes:
            self.flush(batch)
        batch.append(record)

    def flush(self, batch: BulkBatch) -> None:
        """POST the batch to ``_bulk`` and reset it, whatever the outcome."""
        try:
            if not batch or self.aborted.is_set():
                return
            with self._flush_lock:
                try:
                    self._post(batch)
                except Exception as exc:
                    logger.exception("Bulk write raised")
                    self._failed(batch.count, str(exc))
        finally:
            batch.reset()

    def _post(self, batch: BulkBatch) -> None:
        payload = batch.payload()
        failure = ""
        for attempt in range(self._retries + 1):
            if attempt:
                logger.warning("Retrying bulk write (attempt %d of %d)", attempt + 1, self._retries + 1)
            try:
                response = self._client.bulk(payload)
            except httpx.HTTPError as exc:
                failure = str(exc)
                continue
            if not response.is_success:
                failure = f"HTTP {response.status_code}: {response.text}"
                continue
            self._record_items(response, batch.count)
            return

        self._failed(batch.count, failure)

    def _failed(self, count: int, failure: str) -> None:
        self._sink.report(Stage.BULK, f"bulk write of {count} document(s) failed: {failure}")
        if self._failure_policy is BulkFailurePolicy.ABORT:
            self._sink.report(Stage.BULK, "aborting migration after failed bulk write")
            self.aborted.set()

    def _record_items(self, response: httpx.Response, count: int) -> None:
        self.flushes += 1
        try:
            payload = response.json()
        except ValueError:
            logger.warning("Undecodable bulk response; assuming %d document(s) written", count)
            self.documents_written += count
            return

        failed = 0
        if isinstance(payload, dict) and payload.get("errors"):
            items = payload.get("items")
            if not isinstance(items, list):
                items = []
            for item in items:
                if not isinstance(item, dict):
                    continue
                for result in item.values():
                    if isinstance(result, dict) and "error" in result:
                        failed += 1
                        self._sink.report(
                            Stage.BULK,
                            f"{result.get('_index')}/{result.get('_id')}: {result['error']}",
                        )
        self.documents_written += count - failed
        logger.debug("Flushed %d document(s), %d rejected", count, failed)
