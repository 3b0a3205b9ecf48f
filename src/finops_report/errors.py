class ReportError(Exception):
    """Base class for report failures."""


class ConfigError(ReportError):
    """Credentials, profile or command-line settings could not be established."""


class FetchError(ReportError):
    """Cost Explorer data for one date range could not be retrieved."""

    def __init__(self, start: str, end: str, message: str):
        super().__init__(f"failed to get cost and usage for {start} to {end}: {message}")
        self.start = start
        self.end = end
