"""Exceptions raised by the heartbeat engine."""


class SlotwatchError(Exception):
    """Base class for all slotwatch errors."""


class StateWriteError(SlotwatchError):
    """The state file could not be written."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to write state to {path}: {reason}")


class SourceError(SlotwatchError):
    """The upstream booking source could not be read."""
