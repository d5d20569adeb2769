"""Error taxonomy for the segmented transcription pipeline."""

from typing import Optional


class PipelineError(Exception):
    """Base class for every error raised by the pipeline core."""


class CodecError(PipelineError):
    """The codec service failed on a conversion, probe or cut."""


class ConversionError(CodecError):
    """The codec could not produce normalized audio."""


class DurationProbeError(CodecError):
    """The duration of an audio chunk could not be determined."""


class SplitDepthExceededError(PipelineError):
    """Recursive splitting did not converge below the size limit."""


class SegmentTranscriptionError(PipelineError):
    def __init__(self, segment_id: str, cause: BaseException):
        super().__init__(f"Segment {segment_id} failed: {cause}")
        self.segment_id = segment_id
        self.cause = cause


class BatchTranscriptionError(PipelineError):
    """A segment failed inside a batch.

    ``completed`` holds the pieces of the batch that did succeed, so the
    caller can checkpoint them before surfacing the error.
    """

    def __init__(self, batch_number: int, failures: list, completed: Optional[list] = None):
        first = failures[0]
        super().__init__(
            f"Batch {batch_number} failed on {len(failures)} segment(s), first: {first}"
        )
        self.batch_number = batch_number
        self.failures = failures
        self.completed = completed or []


class SummarizationError(PipelineError):
    """The summarization provider call failed; the transcript is untouched."""


class MissingPrerequisiteError(PipelineError):
    def __init__(self, stage: str, artifact: str):
        super().__init__(
            f"Cannot run stage '{stage}': missing prerequisite artifact '{artifact}'"
        )
        self.stage = stage
        self.artifact = artifact


class StageFailedError(PipelineError):
    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"Stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause


class PipelineBusyError(PipelineError):
    """Another run currently owns the codec working area."""


class ProviderConfigurationError(PipelineError):
    """Unknown provider name or missing credentials."""
