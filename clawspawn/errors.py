from __future__ import annotations


class SpawnError(RuntimeError):
    """Base class for every failure the CLI reports to the operator."""


class InstanceNotFound(SpawnError):
    def __init__(self, name: str):
        super().__init__(f"No instance named '{name}'")
        self.name = name


class InstanceAlreadyExists(SpawnError):
    def __init__(self, name: str):
        super().__init__(f"Instance '{name}' already exists")
        self.name = name


class InvalidInstanceName(SpawnError, ValueError):
    def __init__(self, name: str):
        super().__init__(
            f"Invalid instance name '{name}': use only lowercase letters, numbers, and hyphens"
        )
        self.name = name


class EngineUnavailable(SpawnError):
    """Docker is missing or not answering; nothing else can run."""


class OperationFailed(SpawnError):
    """An engine call or in-container command exited non-zero."""

    def __init__(self, message: str, cmd=None, returncode: int | None = None):
        super().__init__(message)
        self.cmd = cmd
        self.returncode = returncode


class PortExhausted(SpawnError):
    pass
