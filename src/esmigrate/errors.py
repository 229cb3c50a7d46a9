"""Fatal error types for esmigrate runs."""

from __future__ import annotations


class MigrationError(RuntimeError):
    """Base for errors that abort a run before any documents are written."""


class ResolutionError(MigrationError):
    pass


class MissingSettingsError(MigrationError):
    def __init__(self, index: str, detail: str = "no shard count found") -> None:
        super().__init__(f"missing settings for index '{index}': {detail}")
        self.index = index


class ProvisioningError(MigrationError):
    def __init__(self, index: str, action: str, body: str) -> None:
        super().__init__(f"failed {action} index '{index}': {body}")
        self.index = index
        self.action = action
        self.body = body


class ScrollOpenError(MigrationError):
    pass
