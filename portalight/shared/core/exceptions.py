from typing import Optional, Dict, Any, List


class PortalightException(Exception):
    """Base exception for all Portalight errors."""
    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class SourceUnavailableError(PortalightException):
    """Raised when source control or a cloud API cannot be reached or rejects our credentials."""
    def __init__(self, message: str, code: str = "source_unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=503, details=details)


class CatalogNotFoundError(PortalightException):
    """Raised when a catalog file is absent at the configured branch."""
    def __init__(self, message: str, code: str = "catalog_not_found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=404, details=details)


class CatalogParseError(PortalightException):
    """Raised when catalog content is malformed or misses required fields."""
    def __init__(self, message: str, errors: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        self.errors = list(errors or [])
        merged = dict(details or {})
        if self.errors:
            merged.setdefault("validation_errors", self.errors)
        super().__init__(message, code="catalog_parse_error", status_code=422, details=merged)


class CredentialNotFoundError(PortalightException):
    """Raised when a stored cloud credential does not exist or cannot be decrypted."""
    def __init__(self, message: str, code: str = "credential_not_found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=404, details=details)


class ProvisionError(PortalightException):
    """Raised when the cloud provider refuses to create a resource."""
    def __init__(self, message: str, code: str = "provision_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=502, details=details)


class ConflictError(PortalightException):
    """Raised when an association or resource already exists."""
    def __init__(self, message: str, code: str = "already_exists", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=409, details=details)


class ResourceNotFoundError(PortalightException):
    """Raised when a requested resource is not found."""
    def __init__(self, message: str, code: str = "not_found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=404, details=details)


class AuthError(PortalightException):
    """Raised when authentication or authorization fails."""
    def __init__(self, message: str, code: str = "auth_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=401, details=details)


class ConfigurationError(PortalightException):
    """Raised when application configuration is invalid or missing."""
    def __init__(self, message: str, code: str = "config_error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code=code, status_code=500, details=details)


class ExternalAPIError(PortalightException):
    """Raised when an upstream HTTP API fails after retries."""
    def __init__(self, message: str, upstream_status: Optional[int] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="external_api_error", status_code=502, details=details)
        self.upstream_status = upstream_status
