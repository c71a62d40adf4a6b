"""Errors raised by the external service clients."""

class ProviderError(Exception):
    """Raised when the ride provider cannot be reached or answers badly."""
    pass

class ProviderServerError(ProviderError):
    """Raised when the ride provider answers with a 5xx status."""

    def __init__(self, status_code: int, message: str = ""):
        self.status_code = status_code
        super().__init__(message or f"Provider returned HTTP {status_code}")

class GeocodingError(ProviderError):
    """Raised when the geocoding service cannot be reached."""
    pass
