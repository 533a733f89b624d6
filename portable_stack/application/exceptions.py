"""
Core business exceptions for the stack installer.

This module defines a hierarchy of custom exceptions to allow for granular
error handling and clear separation of failure domains. Adapters raise these
internally; the I/O boundaries convert them into explicit result objects.
"""


class StackError(Exception):
    """Base exception for all installer-specific errors."""
    pass


# --- Configuration Errors ---

class ConfigurationError(StackError):
    """Raised for invalid parameters, settings or rendered artifacts."""
    pass


# --- Infrastructure Errors ---

class InfrastructureError(StackError):
    """Base class for errors related to external systems (network, disk, processes)."""
    pass


class DiscoveryError(InfrastructureError):
    """Raised when an upstream listing cannot be fetched or parsed."""
    pass


class DownloadError(InfrastructureError):
    """Raised when a file download attempt fails."""
    pass


class ExtractionError(InfrastructureError):
    """Raised when an archive cannot be extracted or normalized."""
    pass


# --- Domain/Business Logic Errors ---

class DomainError(StackError):
    """Base class for errors related to business logic failures."""
    pass


class VerificationError(DomainError):
    """Raised when a downloaded or extracted artifact fails a check."""
    pass


class AcquisitionError(DomainError):
    """Raised when a component could not be acquired by any means."""
    pass
