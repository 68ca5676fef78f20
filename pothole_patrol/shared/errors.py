class ApplicationError(Exception):
    """Base error for known application failures."""


class InfrastructureError(ApplicationError):
    """Raised when an infrastructure adapter fails."""


class ModelNotInitializedError(ApplicationError):
    """Raised when detection is requested before the model finished loading."""


class TensorLayoutError(ApplicationError):
    """Raised when a tensor does not match the layout the codec was configured for."""


class ImageEncodingError(ApplicationError, ValueError):
    """Raised when a still image cannot be encoded or decoded."""


class GeolocationError(ApplicationError):
    """Raised when the current position cannot be resolved."""


class InvalidTransitionError(ApplicationError):
    """Raised when a patrol or report state change is not allowed."""


class ReportSubmissionError(InfrastructureError):
    """Raised when the backend rejects a single report."""


class SubmissionAbortedError(ApplicationError):
    """Raised when a batch submission stage fails and later stages must not run."""

    stage = "unknown"


class ProofVerificationError(SubmissionAbortedError):
    """Raised when the uniqueness proof cannot be obtained or is rejected."""

    stage = "proof"


class ArchiveUploadError(SubmissionAbortedError, InfrastructureError):
    """Raised when the batch archive cannot be uploaded."""

    stage = "archive"
