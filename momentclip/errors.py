"""Error taxonomy shared by the pipeline, the transcoder and the AI client."""


class MomentClipError(Exception):
    """Base class for every error raised by momentclip."""


class MalformedTimecode(MomentClipError, ValueError):
    pass


class SourceNotFound(MomentClipError):
    pass


class ProcessFailed(MomentClipError):
    """An external tool exited with a non-zero status.

    ``process_output`` holds the tail of the tool's diagnostic stream.
    """

    def __init__(self, message: str, process_output: str = ""):
        super().__init__(message)
        self.process_output = process_output

    def __str__(self) -> str:
        base = super().__str__()
        if self.process_output:
            return f"{base}: {self.process_output.strip()}"
        return base


class ExtractionFailed(ProcessFailed):
    pass


class SubtitleConversionFailed(ProcessFailed):
    pass


class EmbedFailed(ProcessFailed):
    pass


class UpstreamError(MomentClipError):
    """The hosted AI service rejected or failed a request."""


class UpstreamParseFailure(UpstreamError):
    """The AI service answered with something other than the expected JSON."""


class ProcessingTimeout(UpstreamError):
    pass


class CleanupFailure(MomentClipError):
    """Only ever logged; never raised out of a release."""
