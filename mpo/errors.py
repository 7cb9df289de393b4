from __future__ import annotations


class ConfigurationError(Exception):
    """The declared resource cannot be acted upon until the user edits it."""


class InvalidRuleTree(ConfigurationError):
    def __init__(self, path: str, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path


class ReconcileError(Exception):
    """Retryable failure while converging a resource."""


class BackendResolutionError(ReconcileError):
    pass


class FingerprintError(Exception):
    pass


class ClusterError(Exception):
    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class NotFound(ClusterError):
    def __init__(self, message: str):
        super().__init__(message, status=404)


class Conflict(ClusterError):
    def __init__(self, message: str):
        super().__init__(message, status=409)
