"""Exception types raised while scraping CVMFS servers."""


class ScraperError(Exception):
    """Base class for every error a server scrape can surface."""


class TransportFailure(ScraperError):
    """A document could not be fetched (connection, timeout or HTTP status)."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch {url}: {reason}")


class DocumentFormatError(ScraperError):
    """A fetched document is not valid JSON or lacks required fields."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Malformed document {source}: {reason}")


class EmptyRepositoryList(ScraperError):
    """An explicit S3 backend was configured without any repositories."""

    def __init__(self, hostname: str):
        self.hostname = hostname
        super().__init__(
            f"Empty repository list with explicit S3 backend: {hostname}"
        )


class ServerTypeMismatch(ScraperError):
    """Replicas in repositories.json contradict the declared server type."""


class ConversionError(ScraperError):
    """A value from a document failed validation (e.g. a bad version string)."""


class ManifestFormatError(ScraperError):
    """A .cvmfspublished manifest could not be parsed."""


class MisuseError(ScraperError):
    """A scrape outcome was accessed as the wrong variant."""


class ConfigError(ScraperError):
    """The configuration file or command line is invalid."""
