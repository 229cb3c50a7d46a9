"""Index settings normalization across old and new source formats."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from esmigrate.errors import MissingSettingsError

if TYPE_CHECKING:
    from esmigrate.indexes import IndexDefinition

logger = logging.getLogger(__name__)

# Replicas are disabled while bulk loading; restored afterwards on request.
LOAD_REPLICAS = "0"


@dataclass(frozen=True)
class IndexSettings:
    """Shard and replica counts, kept as the strings the source reports."""

    shards: str | None = None
    replicas: str | None = None

    def to_body(self) -> dict:
        index: dict[str, str] = {}
        if self.shards is not None:
            index["number_of_shards"] = self.shards
        if self.replicas is not None:
            index["number_of_replicas"] = self.replicas
        return {"index": index}


def _as_count(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise TypeError(f"expected a count, got {type(value).__name__}")
    return str(value)


def parse_settings(name: str, raw: dict) -> IndexSettings:
    """Parse one index's entry from ``/_all/_settings``.

    Newer servers nest counts under ``settings.index``; older ones use
    flattened keys such as ``settings["index.number_of_shards"]``.
    """
    body = raw.get("settings") if isinstance(raw, dict) else None
    if not isinstance(body, dict):
        raise MissingSettingsError(name, "no settings object")

    try:
        if "index" in body:
            nested = body["index"]
            if not isinstance(nested, dict):
                raise MissingSettingsError(name, "'index' settings is not an object")
            shards = _as_count(nested.get("number_of_shards"))
            replicas = _as_count(nested.get("number_of_replicas"))
        else:
            shards = _as_count(body.get("index.number_of_shards"))
            replicas = _as_count(body.get("index.number_of_replicas"))
    except TypeError as exc:
        raise MissingSettingsError(name, str(exc)) from exc

    if shards is None:
        raise MissingSettingsError(name)
    return IndexSettings(shards=shards, replicas=replicas)


def normalize(
    definitions: tuple[IndexDefinition, ...], all_settings: dict
) -> tuple[IndexDefinition, ...]:
    """Attach source shard/replica settings to each definition."""
    normalized = []
    for definition in definitions:
        raw = all_settings.get(definition.name)
        if raw is None:
            raise MissingSettingsError(definition.name, "index not present in settings listing")
        settings = parse_settings(definition.name, raw)
        logger.debug(
            "Index '%s': %s shards, %s replicas",
            definition.name, settings.shards, settings.replicas,
        )
        normalized.append(replace(definition, settings=settings, source_replicas=settings.replicas))
    return tuple(normalized)


def apply_overrides(
    definitions: tuple[IndexDefinition, ...],
    shards: int | str | None = None,
    replicate: bool = False,
) -> tuple[IndexDefinition, ...]:
    """Apply the shard override and force replicas off for the load.

    When ``replicate`` is false the source replica count is forgotten so that
    nothing is restored after the load.
    """
    result = []
    for definition in definitions:
        current = definition.settings or IndexSettings()
        shard_count = str(shards) if shards is not None else current.shards
        result.append(replace(
            definition,
            settings=IndexSettings(shards=shard_count, replicas=LOAD_REPLICAS),
            source_replicas=definition.source_replicas if replicate else None,
        ))
    return tuple(result)
