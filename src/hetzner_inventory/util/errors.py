from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    CREDENTIALS_ERROR = 3
    ROBOT_ERROR = 4
    RUNTIME_ERROR = 5


class InventoryError(Exception):
    """Base error for inventory pipeline."""


class ConfigError(InventoryError):
    """Raised for configuration or argument issues."""


class CredentialsError(InventoryError):
    """Raised when Robot credentials cannot be resolved."""


class RobotClientError(InventoryError):
    """Raised when a Robot webservice call fails."""


class ReconcileError(InventoryError):
    """Raised when the provider collections cannot be merged into a consistent node graph."""


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, CredentialsError):
        return int(ExitCode.CREDENTIALS_ERROR)
    if isinstance(exc, RobotClientError):
        return int(ExitCode.ROBOT_ERROR)
    if isinstance(exc, (ReconcileError, InventoryError)):
        return int(ExitCode.RUNTIME_ERROR)
    return 1


def map_robot_error(exc: BaseException, context: str) -> RobotClientError | None:
    """
    Prefix Robot client errors with the failing operation so the CLI can report it.
    Returns None for anything that is not a Robot client error.
    """
    if not isinstance(exc, RobotClientError):
        return None
    return RobotClientError(f"{context}: {exc}")
