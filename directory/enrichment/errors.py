"""
Typed errors raised by the pipeline's external clients and parsers.

Every error carries a short machine-readable ``reason`` (e.g. ``timeout``,
``api_error``, ``rate_limited``) plus optional details, so workers can
decide between retrying and discarding without string matching.
"""

# Reasons that are worth another attempt
TRANSIENT_REASONS = {'timeout', 'network_error', 'rate_limited', 'server_error'}


class PipelineError(Exception):
    """Base class for pipeline errors."""

    def __init__(self, reason: str, message: str = '', **details):
        self.reason = reason
        self.details = details
        super().__init__(message or reason)

    @property
    def transient(self) -> bool:
        if self.reason in TRANSIENT_REASONS:
            return True
        status = self.details.get('status')
        return status == 429 or (isinstance(status, int) and status >= 500)


class CompletionError(PipelineError):
    """AI completion failed (api_error, network_error, cli_not_available, exit_code, timeout, exception)."""
    pass


class SearchError(PipelineError):
    pass


class TranslationError(PipelineError):
    pass


class ImportFailed(PipelineError):
    """Every category query of a discovery import failed."""
    pass


class EnrichmentParseError(PipelineError):
    """The model reply could not be turned into enrichment attributes."""
    pass
