class EngineError(RuntimeError):
    """Fatal loop error: the current loop iteration is aborted and not retried."""


class StoreError(EngineError):
    pass


class ContentValidationError(StoreError, ValueError):
    """Raised when message content does not parse into a known block kind."""
