"""Typed failures raised by the Scope of Work pipeline.

Hard failures (brief, generation, parse, persistence) stop the pipeline
before anything is persisted. Approval and lookup failures are raised at the
repository boundary and mapped to HTTP status codes by the router.
"""

from typing import Any, Dict, List, Optional


class SoWServiceError(Exception):
    """Base class for every error this service raises on purpose."""


class InvalidBriefError(SoWServiceError):
    def __init__(self, violations: List[str]):
        self.violations = list(violations)
        super().__init__("Invalid project brief: " + "; ".join(self.violations))


class TransientGenerationError(SoWServiceError):
    """Generation failures that are worth retrying."""


class GenerationUnavailableError(TransientGenerationError):
    pass


class GenerationTimeoutError(TransientGenerationError):
    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Model call timed out after {timeout_seconds:g}s")


class InvalidPromptError(SoWServiceError):
    """The prompt itself is unusable. Never retried."""


class ModelConfigurationError(SoWServiceError):
    """No usable chat model is configured (missing key, endpoint or provider). Never retried."""


class ParseError(SoWServiceError):
    def __init__(
        self,
        message: str,
        partial: Optional[Dict[str, Any]] = None,
        details: Optional[List[str]] = None,
    ):
        self.partial = partial or {}
        self.details = details or []
        super().__init__(message)


class NotFoundError(SoWServiceError):
    pass


class ApprovalBlockedError(SoWServiceError):
    def __init__(self, reasons: List[str]):
        self.reasons = list(reasons)
        super().__init__("Approval blocked: " + "; ".join(self.reasons))


class VersionConflictError(SoWServiceError):
    pass
