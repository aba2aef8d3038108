class CountryApiError(Exception):
    """Base class for errors raised by the country API services."""


class UpstreamFetchFailure(CountryApiError):
    """One of the external data sources failed, timed out or returned an unusable payload."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class StoreFailure(CountryApiError):
    """A database transaction failed and was rolled back."""


class CountryNotFound(CountryApiError):
    def __init__(self, name: str):
        super().__init__(f"Country not found: {name}")
        self.name = name


class RenderFailure(CountryApiError):
    """The summary image could not be produced."""
