"""Discover and filter source indexes."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

import httpx

from esmigrate.client import ClusterClient
from esmigrate.errors import ResolutionError
from esmigrate.settings import IndexSettings

logger = logging.getLogger(__name__)

ALL_INDEXES = "_all"


@dataclass(frozen=True)
class IndexDefinition:
    """Everything needed to recreate one index on the destination."""

    name: str
    mappings: dict = field(default_factory=dict)
    settings: IndexSettings | None = None
    source_replicas: str | None = None

    def body(self) -> dict:
        body: dict = {"mappings": self.mappings}
        if self.settings is not None:
            body["settings"] = self.settings.to_body()
        return body


@dataclass(frozen=True)
class ResolvedIndexes:
    definitions: tuple[IndexDefinition, ...]
    pattern: str

    @property
    def names(self) -> list[str]:
        return [d.name for d in self.definitions]


def filter_index_names(names: Iterable[str], include_all: bool = False) -> list[str]:
    """Drop internal (``_``) names always and dot-names unless include_all."""
    kept = []
    for name in names:
        if not name or name.startswith("_"):
            continue
        if name.startswith(".") and not include_all:
            continue
        kept.append(name)
    return kept


def _get_json(response_fn, what: str) -> dict:
    try:
        response = response_fn()
    except httpx.HTTPError as exc:
        raise ResolutionError(f"failed fetching {what}: {exc}") from exc
    if not response.is_success:
        raise ResolutionError(
            f"failed fetching {what}: HTTP {response.status_code}: {response.text}"
        )
    try:
        payload = response.json()
    except ValueError as exc:
        raise ResolutionError(f"failed decoding {what}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ResolutionError(f"failed decoding {what}: expected an object")
    return payload


def resolve(
    client: ClusterClient,
    pattern: str = ALL_INDEXES,
    include_all: bool = False,
) -> ResolvedIndexes:
    """List source indexes matching ``pattern`` and keep their mappings."""
    listing = _get_json(lambda: client.get_mapping(pattern), f"mappings for '{pattern}'")

    definitions = []
    for name in sorted(filter_index_names(listing, include_all)):
        body = listing[name]
        if not isinstance(body, dict):
            raise ResolutionError(f"unexpected mapping body for index '{name}'")
        # Pre-1.0 servers return the type mappings without a wrapper
        mappings = body["mappings"] if "mappings" in body else body
        definitions.append(IndexDefinition(name=name, mappings=mappings))

    skipped = len(listing) - len(definitions)
    if skipped:
        logger.info("Skipped %d internal or hidden index(es)", skipped)

    resolved_pattern = pattern
    if pattern == ALL_INDEXES:
        # Pin the scroll to the indexes that exist now
        resolved_pattern = ",".join(d.name for d in definitions)

    return ResolvedIndexes(definitions=tuple(definitions), pattern=resolved_pattern)


def fetch_settings(client: ClusterClient) -> dict:
    """Fetch every index's settings from the source."""
    return _get_json(client.get_settings, "index settings")
