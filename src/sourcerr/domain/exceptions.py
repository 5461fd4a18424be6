"""Source aggregation exceptions."""

from __future__ import annotations


class SourcerrError(Exception):
    """Base class for all sourcerr errors."""


class SearchCancelledError(SourcerrError):
    """Raised by a port that observed its session's cancellation signal.

    Not a failure: callers discard it silently.
    """


class ProviderError(SourcerrError):
    """A single provider failed; contained inside the session."""

    def __init__(self, provider_id: str, message: str = "") -> None:
        super().__init__(message or f"provider {provider_id!r} failed")
        self.provider_id = provider_id


class ProviderRequestError(ProviderError):
    """Network / HTTP status failure while talking to a provider."""


class ProviderPayloadError(ProviderError):
    """The provider answered, but the payload could not be parsed."""


class NoUsableResultsError(ProviderError):
    """The provider answered without any result carrying an episode."""


class SourceAggregationError(SourcerrError):
    """User-facing failure of a whole session."""

    message = "source aggregation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


class NoProvidersEnabledError(SourceAggregationError):
    """The enabled provider list itself is empty (configuration problem)."""

    message = "no play source providers are enabled; enable one in settings"


class NoSourceFoundError(SourceAggregationError):
    """Providers were queried, but none produced a usable source."""

    message = "no play source found"
