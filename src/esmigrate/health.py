"""Block until both clusters report an acceptable health status."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

import httpx

from esmigrate.client import ClusterClient

logger = logging.getLogger(__name__)

HEALTH_INTERVAL = 3.0


class HealthStatus(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class ClusterHealth:
    cluster_name: str
    status: HealthStatus


def is_acceptable(status: HealthStatus, require_green: bool = False) -> bool:
    if status is HealthStatus.GREEN:
        return True
    if status is HealthStatus.YELLOW:
        return not require_green
    return False


def check_health(client: ClusterClient) -> ClusterHealth:
    """Poll ``/_cluster/health`` once. Any failure reads as unreachable."""
    try:
        response = client.health()
    except httpx.HTTPError as exc:
        logger.debug("Health check on %s failed: %s", client.base_url, exc)
        return ClusterHealth(cluster_name=client.base_url, status=HealthStatus.UNREACHABLE)

    if not response.is_success:
        return ClusterHealth(cluster_name=client.base_url, status=HealthStatus.UNREACHABLE)
    try:
        payload = response.json()
        status = HealthStatus(payload["status"])
    except (ValueError, KeyError, TypeError):
        return ClusterHealth(cluster_name=client.base_url, status=HealthStatus.UNREACHABLE)
    return ClusterHealth(cluster_name=payload.get("cluster_name") or client.base_url, status=status)


def await_ready(
    clients: Sequence[ClusterClient],
    require_green: bool = False,
    interval: float = HEALTH_INTERVAL,
    sleep: Callable[[float], None] = time.sleep,
) -> list[ClusterHealth]:
    """Poll every cluster each tick until all of them are acceptable together.

    Returns the health snapshot from the tick that passed.
    """
    while True:
        snapshot = [check_health(client) for client in clients]
        waiting = [h for h in snapshot if not is_acceptable(h.status, require_green)]
        if not waiting:
            return snapshot
        for health in waiting:
            logger.info(
                "Waiting for cluster '%s' (status %s)",
                health.cluster_name, health.status.value,
            )
        sleep(interval)
