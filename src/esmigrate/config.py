"""Configuration management for esmigrate."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path

import yaml

from esmigrate.health import HEALTH_INTERVAL
from esmigrate.indexes import ALL_INDEXES
from esmigrate.writer import FLUSH_BYTES, BulkFailurePolicy

DEFAULT_CONFIG_PATH = os.path.expanduser("~/.esmigrate/config.yaml")
DEFAULT_PAGE_SIZE = 100
DEFAULT_SCROLL_TIME = "1m"


@dataclass
class MigrateConfig:
    source: str = ""
    dest: str = ""
    page_size: int = DEFAULT_PAGE_SIZE
    scroll_time: str = DEFAULT_SCROLL_TIME
    force: bool = False
    copy_settings: bool = True
    shards: int | None = None
    indexes: str = ALL_INDEXES
    include_all: bool = False
    workers: int = 1
    replicate: bool = False
    require_green: bool = False
    docs_only: bool = False
    index_only: bool = False
    flush_bytes: int = FLUSH_BYTES
    bulk_failure: str = BulkFailurePolicy.DROP.value
    bulk_retries: int = 0
    health_interval: float = HEALTH_INTERVAL
    request_timeout: float | None = None

    @classmethod
    def load(cls, config_path: str = DEFAULT_CONFIG_PATH) -> MigrateConfig:
        path = Path(config_path)
        if not path.exists():
            return cls()

        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"{config_path}: expected a mapping at top level")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ValueError(f"{config_path}: unknown option(s) {', '.join(unknown)}")
        return cls(**raw)

    def merge(self, overrides: dict) -> MigrateConfig:
        """Apply non-None overrides (typically parsed CLI flags) in place."""
        known = {f.name for f in fields(self)}
        for name, value in overrides.items():
            if name in known and value is not None:
                setattr(self, name, value)
        return self

    @property
    def queue_capacity(self) -> int:
        return self.page_size * self.workers

    @property
    def failure_policy(self) -> BulkFailurePolicy:
        return BulkFailurePolicy(self.bulk_failure)

    def validate(self) -> None:
        if not self.source:
            raise ValueError("source cluster URL is required")
        if not self.dest:
            raise ValueError("destination cluster URL is required")
        if self.page_size < 1:
            raise ValueError("page_size must be positive")
        if self.workers < 1:
            raise ValueError("workers must be positive")
        if self.shards is not None and self.shards < 1:
            raise ValueError("shards must be positive")
        if self.flush_bytes < 1:
            raise ValueError("flush_bytes must be positive")
        if self.bulk_retries < 0:
            raise ValueError("bulk_retries cannot be negative")
        if self.docs_only and self.index_only:
            raise ValueError("docs_only and index_only are mutually exclusive")
        try:
            BulkFailurePolicy(self.bulk_failure)
        except ValueError:
            choices = ", ".join(p.value for p in BulkFailurePolicy)
            raise ValueError(f"bulk_failure must be one of: {choices}") from None
