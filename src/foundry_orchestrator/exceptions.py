"""Custom exceptions for the foundry pipeline.

Every exception carries a stable ``kind`` string; the completion report
and the archived run record the kind rather than the class name.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    kind = "PipelineError"


class ConfigurationError(PipelineError):
    """Raised for configuration issues (bad template, missing command, etc.)."""

    kind = "ConfigurationError"


class DuplicateUnresolvedError(PipelineError):
    """Raised when a registry conflict has no acceptable answer."""

    kind = "DuplicateUnresolved"

    def __init__(self, target_name: str, message: str = "") -> None:
        self.target_name = target_name
        super().__init__(
            message or f"Registry conflict for '{target_name}' requires a disposition"
        )


class DispositionUnresolvedError(PipelineError):
    """Raised when a work-order disposition is needed but unavailable."""

    kind = "DispositionUnresolved"


class RunAborted(PipelineError):
    """Raised when the operator chose Abort or a shutdown was requested."""

    kind = "Aborted"


class UnreachableError(PipelineError):
    """Raised when a remote source cannot be probed or fetched."""

    kind = "Unreachable"

    def __init__(self, url: str, message: str = "") -> None:
        self.url = url
        super().__init__(message or f"Remote source unreachable: {url}")


class RouteUnsatisfiableError(PipelineError):
    """Raised when the chosen route needs an input the request lacks."""

    kind = "RouteUnsatisfiable"


class WorkOrderInvalidError(PipelineError):
    """Raised when a work-order fails the structural completeness check."""

    kind = "WorkOrderInvalid"


class StructurallyInvalidError(PipelineError):
    """Raised when a worker document fails its schema check."""

    kind = "StructurallyInvalid"


class WorkerFailedError(PipelineError):
    """Raised when a worker reports failure."""

    kind = "WorkerFailed"

    def __init__(self, worker_kind: str = "", message: str = "") -> None:
        self.worker_kind = worker_kind
        super().__init__(message or f"Worker '{worker_kind}' failed")


class WorkerTimedOutError(PipelineError):
    """Raised when a worker exceeds its timeout bound."""

    kind = "WorkerTimedOut"

    def __init__(self, worker_kind: str, timeout: int) -> None:
        self.worker_kind = worker_kind
        self.timeout = timeout
        super().__init__(f"Worker '{worker_kind}' timed out after {timeout}s")


class QualityThresholdUnmetError(PipelineError):
    """Raised when the build quality report misses one or more thresholds."""

    kind = "QualityThresholdUnmet"

    def __init__(self, unmet: list[str], resource: object = None) -> None:
        self.unmet = list(unmet)
        self.resource = resource
        super().__init__("Quality thresholds unmet: " + "; ".join(self.unmet))


class ValidationFailedError(PipelineError):
    """Raised when the format validator rejects a resource."""

    kind = "ValidationFailed"

    def __init__(self, resource_ref: str, diagnostics: list[str]) -> None:
        self.resource_ref = resource_ref
        self.diagnostics = list(diagnostics)
        detail = "; ".join(self.diagnostics) or "no diagnostics"
        super().__init__(f"Format validation failed for {resource_ref}: {detail}")


class ExitPredicateUnmetError(PipelineError):
    """Raised when a phase's exit predicate does not hold."""

    kind = "ExitPredicateUnmet"

    def __init__(self, phase: str, predicate: str) -> None:
        self.phase = phase
        self.predicate = predicate
        super().__init__(f"Exit predicate '{predicate}' unmet for phase '{phase}'")
