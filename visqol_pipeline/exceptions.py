"""Custom exceptions for the similarity pipeline."""


class VisqolError(Exception):
    """Base exception for pipeline errors."""

    pass


class InitializationError(VisqolError):
    """Exception raised when the pipeline cannot be initialized."""

    pass


class CompareError(VisqolError):
    """Base exception for failures of a single reference/degraded comparison."""

    pass


class NotInitializedError(CompareError):
    """Exception raised when a comparison is attempted before initialization.

    Signals a setup defect rather than bad data, so batch runs stop on it.
    """

    pass


class SampleRateMismatchError(CompareError):
    """Exception raised when reference and degraded sample rates differ."""

    def __init__(self, reference_rate: int, degraded_rate: int):
        self.reference_rate = reference_rate
        self.degraded_rate = degraded_rate
        super().__init__(
            "Input audio signals have different sample rates! "
            f"Reference audio sample rate: {reference_rate}. "
            f"Degraded audio sample rate: {degraded_rate}"
        )

    def __reduce__(self):
        # Rebuild from the rates when sent back from a worker process
        return (type(self), (self.reference_rate, self.degraded_rate))


class LoadError(CompareError):
    """Exception raised when an audio file cannot be loaded."""

    pass


class InsufficientAudioError(CompareError):
    """Exception raised when a signal is too short or silent to be scored."""

    pass
