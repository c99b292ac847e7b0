"""Exception hierarchy for the subtitle pipeline."""

import re
from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(PipelineError):
    """
    Invalid job configuration.

    Fatal to the file being processed and never retried, e.g. a video
    submitted in translate-only mode or an unknown translation provider.
    """


class StageError(PipelineError):
    """A collaborator failed while running one stage of a file job."""

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(message)


class AudioExtractionError(StageError):
    """Audio extraction process failed."""

    def __init__(self, message: str):
        super().__init__("extractAudio", message)


class TranscriptionError(StageError):
    """Local or embedded transcription failed."""

    def __init__(self, message: str):
        super().__init__("extractSubtitle", message)


class ResponseParsingError(PipelineError):
    """
    Translator response could not be turned into structured data.

    This is a transient error: the batch is retried, since the model may
    return well-formed output on a later attempt.
    """

    def __init__(self, message: str, response_sample: Optional[str] = None):
        self.response_sample = response_sample
        super().__init__(message)


class TranslationConfigurationError(ConfigurationError):
    """Translator rejected the request because the provider is misconfigured."""


class ResultCountMismatchError(PipelineError, ValueError):
    """Translator returned a different number of lines than it was sent."""


# Substrings (lower-cased) that mark a translator error as configuration related
_EXPLICIT_CONFIG_ERRORS = [
    "missingkeyorsecret",
    "api key is required",
    "not supported language",
    "missing api key",
    "invalid api key",
    "invalid credentials",
    "configuration error",
    "missing configuration",
]

_AUTH_ERRORS = [
    "unauthorized",
    "authentication failed",
    "access denied",
    "forbidden",
]

# HTTP auth status codes, as standalone numbers only
_AUTH_STATUS_REGEX = re.compile(r"\b40[13]\b")


def is_configuration_error(error: BaseException) -> bool:
    """
    Determine whether a translator error is a configuration problem.

    Configuration problems (missing keys, rejected credentials, unsupported
    languages) will fail identically on every attempt, so they abort the file
    instead of being retried. Authentication-looking messages that also
    mention the network or a timeout are treated as transient, as are the
    batch engine's own parse and line-count failures.

    Args:
        error: Exception raised by a translator capability

    Returns:
        True if the error should abort without retry
    """
    if isinstance(error, ConfigurationError):
        return True
    if isinstance(error, (ResponseParsingError, ResultCountMismatchError)):
        return False

    message = str(error).lower()

    if any(pattern in message for pattern in _EXPLICIT_CONFIG_ERRORS):
        return True

    return (
        (
            any(pattern in message for pattern in _AUTH_ERRORS)
            or _AUTH_STATUS_REGEX.search(message) is not None
        )
        and "network" not in message
        and "timeout" not in message
    )
