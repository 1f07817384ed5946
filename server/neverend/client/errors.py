"""Error taxonomy of the catalog page client."""

from typing import Optional


class ClientError(Exception):
    """Base class for every failure the page client reports."""


class CatalogFetchError(ClientError):
    """The tour catalog could not be fetched or parsed; the render cycle is aborted."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ContainerNotFoundError(ClientError):
    """A render surface's container is missing from the page; only that surface is skipped."""

    def __init__(self, surface: str, selector: str):
        super().__init__(f"{surface} container not found: {selector}")
        self.surface = surface
        self.selector = selector


class SubmissionError(ClientError):
    """A form submission failed; ``message`` is shown to the visitor."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RequestInterceptedError(ClientError):
    """A CMS form request was diverted to the site backend instead of being sent."""

    def __init__(self, url: str):
        super().__init__(f"CMS form request intercepted: {url}")
        self.url = url
