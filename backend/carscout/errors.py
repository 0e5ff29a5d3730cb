"""Error taxonomy for the discovery-to-persistence pipeline.

Only ConfigurationError is expected to escape a run or a batch. The other
errors are raised and handled inside the crawler, pipeline and orchestrator
and end up as counters or per-item error strings.
"""


class CarScoutError(Exception):
    """Base class for all pipeline errors."""


class FetchError(CarScoutError):
    """Network failure, timeout or non-2xx response while fetching a page."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class ListingValidationError(CarScoutError):
    """Extracted listing does not match the listing schema."""


class ExtractionStageError(CarScoutError):
    """A content-intelligence stage returned malformed or unusable output."""

    def __init__(self, stage: str, message: str, result=None):
        super().__init__(f"{stage} stage failed: {message}")
        self.stage = stage
        self.result = result


class ConfigurationError(CarScoutError):
    """Missing or invalid source/runtime configuration. Never retried."""
