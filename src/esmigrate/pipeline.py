"""End-to-end migration: resolve, provision, wait, then stream documents."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from esmigrate.client import ClusterClient
from esmigrate.config import MigrateConfig
from esmigrate.docqueue import DocumentQueue
from esmigrate.events import ErrorSink
from esmigrate.health import await_ready
from esmigrate.indexes import IndexDefinition, fetch_settings, resolve
from esmigrate.provision import create_indexes, delete_indexes, restore_replicas
from esmigrate.scroll import Document, ScrollReader
from esmigrate.settings import apply_overrides, normalize
from esmigrate.writer import BulkWriterPool

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    indexes: list[str] = field(default_factory=list)
    documents_read: int = 0
    documents_written: int = 0
    error_count: int = 0
    aborted: bool = False


def prepare_definitions(
    source: ClusterClient,
    definitions: tuple[IndexDefinition, ...],
    config: MigrateConfig,
) -> tuple[IndexDefinition, ...]:
    """Copy source settings if asked, then apply the shard and replica overrides."""
    if config.copy_settings:
        definitions = normalize(definitions, fetch_settings(source))
    return apply_overrides(definitions, shards=config.shards, replicate=config.replicate)


def copy_documents(
    source: ClusterClient,
    dest: ClusterClient,
    pattern: str,
    config: MigrateConfig,
    sink: ErrorSink,
) -> tuple[int, int, bool]:
    """Run the reader against the writer pool until the scroll is exhausted.

    Returns ``(documents_read, documents_written, aborted)``.
    """
    queue: DocumentQueue[Document] = DocumentQueue(config.queue_capacity)
    pool = BulkWriterPool(
        dest,
        queue,
        sink,
        workers=config.workers,
        flush_bytes=config.flush_bytes,
        failure_policy=config.failure_policy,
        retries=config.bulk_retries,
    )
    reader = ScrollReader(
        source,
        pattern,
        queue,
        sink,
        page_size=config.page_size,
        scroll_time=config.scroll_time,
    )

    pool.start()
    try:
        reader.run(should_stop=pool.aborted.is_set)
    finally:
        queue.close()
        pool.join()
    return reader.documents_read, pool.documents_written, pool.aborted.is_set()


def run_migration(
    config: MigrateConfig,
    source: ClusterClient | None = None,
    dest: ClusterClient | None = None,
    sink: ErrorSink | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> MigrationResult:
    """Migrate indexes and documents as described by ``config``.

    Fatal problems raise :class:`esmigrate.errors.MigrationError` before any
    document is written; per-document problems go to the error sink.
    """
    config.validate()
    owned: list[ClusterClient] = []
    if source is None:
        source = ClusterClient(config.source, timeout=config.request_timeout)
        owned.append(source)
    if dest is None:
        dest = ClusterClient(config.dest, timeout=config.request_timeout)
        owned.append(dest)
    if sink is None:
        sink = ErrorSink()
    sink.start()

    result = MigrationResult()
    try:
        resolved = resolve(source, config.indexes, include_all=config.include_all)
        result.indexes = resolved.names
        if not resolved.definitions:
            logger.info("No matching indexes found on source")
            return result
        logger.info("Migrating %d index(es): %s", len(result.indexes), ", ".join(result.indexes))

        definitions = resolved.definitions
        if not config.docs_only:
            definitions = prepare_definitions(source, definitions, config)
            if config.force:
                delete_indexes(dest, definitions)
            create_indexes(dest, definitions)

        if not config.index_only:
            await_ready(
                [source, dest],
                require_green=config.require_green,
                interval=config.health_interval,
                sleep=sleep,
            )
            read, written, aborted = copy_documents(source, dest, resolved.pattern, config, sink)
            result.documents_read = read
            result.documents_written = written
            result.aborted = aborted

        if config.replicate and not config.docs_only and not result.aborted:
            restore_replicas(dest, definitions, sink)
        return result
    finally:
        sink.close()
        result.error_count = sink.count
        for client in owned:
            client.close()
