"""
Exception classes for osslite
"""


class OssException(Exception):
    """
    Base exception for all osslite errors.
    """

    def __init__(self, message: str, status_code: int = None, error_code: str = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code


class ResponseError(OssException):
    """
    Raised when the service answers with a non-success status.

    ``code``, ``request_id`` and ``host_id`` come from the structured XML
    error body when there is one; otherwise they are empty and the message
    is the raw body text.
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        code: str = "",
        request_id: str = "",
        host_id: str = "",
        request=None,
    ):
        super().__init__(message, status_code=status_code, error_code=code or None)
        self.code = code
        self.request_id = request_id
        self.host_id = host_id
        self.request = request


class PaginationError(OssException):
    """Raised when a listing keeps returning a marker it has already seen."""

    def __init__(self, marker: str):
        super().__init__(f"Listing did not advance past marker '{marker}'.")
        self.marker = marker


class PolicyError(OssException):
    """Raised when an upload policy cannot be encoded."""


class ConfigError(OssException):
    """Raised when a configuration file is missing fields or unreadable."""


class RecursiveDeleteError(OssException):
    """
    Raised when the batch delete of a recursive delete fails.

    ``result`` holds the partition after the failure: nothing deleted,
    every listed key undeleted.
    """

    def __init__(self, message: str, result):
        super().__init__(message)
        self.result = result
