"""Error kinds raised by the listing, detection and flattening stages."""


class FaceAnalysisError(Exception):
    """Base class for every error the pipeline surfaces to its caller.

    Attributes:
        kind: Short machine-readable error kind.
        object_key: Offending object key, when the error concerns one object.
        processed: Objects successfully processed before the failure. Filled in
            by the pipeline when the error terminates a pass.
    """

    kind = "error"

    def __init__(self, message: str, *, object_key: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.object_key = object_key
        self.processed: int | None = None

    def __str__(self) -> str:
        text = f"[{self.kind}] {self.message}"
        if self.object_key is not None:
            text += f" (object: {self.object_key})"
        if self.processed is not None:
            text += f" after {self.processed} objects processed"
        return text


class ConfigurationError(FaceAnalysisError):
    """Missing bucket name or output field. Raised before any I/O."""

    kind = "configuration"


class ListingError(FaceAnalysisError):
    """The object store rejected or failed a listing request."""

    kind = "listing"


class RemoteAnalysisError(FaceAnalysisError):
    """Face detection failed for a single object."""

    kind = "remote_analysis"


class DetectionTimeoutError(RemoteAnalysisError):
    kind = "timeout"


class MalformedBundleError(FaceAnalysisError):
    """A face result lacks a mandatory sub-structure."""

    kind = "malformed_bundle"

    def __init__(self, attribute: str, *, object_key: str | None = None) -> None:
        super().__init__(f"Face result is missing '{attribute}'", object_key=object_key)
        self.attribute = attribute


class CancellationError(FaceAnalysisError):
    kind = "cancelled"


class PipelineError(FaceAnalysisError):
    """Per-object failures exceeded the configured error budget."""

    kind = "error_budget_exceeded"
