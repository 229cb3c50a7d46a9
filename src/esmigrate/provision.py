"""Create, delete and finalize destination indexes."""

from __future__ import annotations

import logging

import httpx

from esmigrate.client import ClusterClient
from esmigrate.errors import ProvisioningError
from esmigrate.events import ErrorSink, Stage
from esmigrate.indexes import IndexDefinition

logger = logging.getLogger(__name__)


def delete_indexes(client: ClusterClient, definitions: tuple[IndexDefinition, ...]) -> None:
    """Delete each index on the destination; a missing index is fine."""
    for definition in definitions:
        try:
            response = client.delete_index(definition.name)
        except httpx.HTTPError as exc:
            raise ProvisioningError(definition.name, "deleting", str(exc)) from exc
        if response.status_code == 404:
            logger.debug("Index '%s' did not exist on destination", definition.name)
            continue
        if not response.is_success:
            raise ProvisioningError(definition.name, "deleting", response.text)
        logger.info("Deleted index '%s'", definition.name)


def create_indexes(client: ClusterClient, definitions: tuple[IndexDefinition, ...]) -> None:
    """Create each index; stops at the first failure without rolling back."""
    for definition in definitions:
        try:
            response = client.create_index(definition.name, definition.body())
        except httpx.HTTPError as exc:
            raise ProvisioningError(definition.name, "creating", str(exc)) from exc
        if not response.is_success:
            raise ProvisioningError(definition.name, "creating", response.text)
        logger.info("Created index '%s'", definition.name)


def restore_replicas(
    client: ClusterClient,
    definitions: tuple[IndexDefinition, ...],
    sink: ErrorSink,
) -> None:
    """Put source replica counts back after the load.

    A definition without a known source count is reset to the server default.
    """
    for definition in definitions:
        body = {"index": {"number_of_replicas": definition.source_replicas}}
        try:
            response = client.put_settings(definition.name, body)
        except httpx.HTTPError as exc:
            sink.report(Stage.PROVISION, f"restoring replicas on '{definition.name}': {exc}")
            continue
        if not response.is_success:
            sink.report(
                Stage.PROVISION,
                f"restoring replicas on '{definition.name}': HTTP {response.status_code}: {response.text}",
            )
            continue
        logger.info(
            "Restored replicas on '%s' to %s",
            definition.name, definition.source_replicas or "server default",
        )
