"""
Exception classes for the storefront edge service.

Only conditions that abort an operation are exceptions. A tenant whose shop,
socials or releases could not be fetched is stored with those fields absent,
and a host with no tenant resolves to None.

Example:
    from storefront.exceptions import StoreWriteError

    try:
        store.replace_all(tenants, shops, socials, releases)
    except StoreWriteError as e:
        logger.error("Replace failed: %s", e)
"""


class StorefrontError(Exception):
    """
    Base exception for all storefront errors.

    Catch this to handle any error raised by the package.
    """

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigError(StorefrontError):
    """Raised when required configuration is missing or invalid."""
    pass


class UpstreamError(StorefrontError):
    """
    Raised when the system of record cannot be reached or answers with an error.

    The upstream client itself never raises this; the sync engine raises it
    internally when the root collection fetch fails.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code


class UpstreamDataEmpty(UpstreamError):
    """Raised when the root tenant collection comes back empty."""
    pass


class StoreWriteError(StorefrontError):
    """
    Raised when replacing the local snapshot fails.

    The transaction has been rolled back, so the previous generation is intact.
    """
    pass
