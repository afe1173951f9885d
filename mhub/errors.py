"""Error types shared across connectors and the dashboard pipeline."""

from __future__ import annotations


class SourceUnavailable(RuntimeError):
    """A data source could not be fetched or its payload could not be parsed.

    This is the only hard failure of the metrics core. Empty-but-valid data
    never raises; it yields zeroed metrics and empty rankings instead.
    """

    def __init__(self, message: str, source: str = "") -> None:
        super().__init__(message)
        self.source = source
