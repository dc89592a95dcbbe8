"""
Error taxonomy for the search engine
"""
from typing import Optional


class SearchError(Exception):
    """Base class for errors surfaced to callers of the search engine."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__


class ValidationError(SearchError):
    """Caller-supplied filters or paging are invalid. Not retried."""

    status_code = 400

    def __init__(self, message: str, problems: Optional[list] = None):
        super().__init__(message)
        self.problems = problems or [message]


class UpstreamError(SearchError):
    """The Companies House API rejected or failed a request."""

    def __init__(self, status: int, message: str = "Companies House API error"):
        super().__init__(message)
        self.status = status
        self.status_code = status


class CapabilityUnavailable(UpstreamError):
    """The advanced search endpoint cannot be used with the configured key."""

    def __init__(self, message: str = "Advanced search is unavailable"):
        super().__init__(503, message)


class SnapshotNotFound(SearchError):
    status_code = 404

    def __init__(self, token: str):
        super().__init__("Export token not found or expired")
        self.token = token


class SearchCancelled(SearchError):
    """Raised inside the pipeline once the caller has asked it to stop."""

    status_code = 499

    def __init__(self, message: str = "Search cancelled"):
        super().__init__(message)


class StorageError(SearchError):
    """The database behind snapshots or presets failed."""

    status_code = 503


class PresetNotFound(SearchError):
    status_code = 404

    def __init__(self, preset_id: str):
        super().__init__("Preset not found")
        self.preset_id = preset_id
