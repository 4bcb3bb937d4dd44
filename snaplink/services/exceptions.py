"""Exceptions for the URL shortener service layer.

This module contains the exception hierarchy for the service layer,
providing domain-specific exceptions that abstract underlying implementation details.
The API layer maps each branch to an HTTP status.
"""


class ServiceError(Exception):
    """Base exception for all service-level errors."""
    pass


class ValidationError(ServiceError):
    """Caller input failed validation checks (400)."""
    pass


class InvalidURLError(ValidationError):
    """The URL format is invalid."""
    pass


class InvalidAliasError(ValidationError):
    """The requested custom alias doesn't meet requirements."""
    pass


class AliasConflictError(ServiceError):
    """The requested custom alias is already in use (409)."""
    pass


class AllocationExhaustedError(ServiceError):
    """Every generated short code collided within the attempt bound (503)."""
    pass


class URLNotFoundError(ServiceError):
    """URL with the specified short code was not found (404)."""
    pass


class DependencyUnavailableError(ServiceError):
    """The database or the analytics queue could not be reached (503)."""
    pass


class ConfigurationError(ServiceError):
    """Required configuration is missing; raised at startup."""
    pass
