"""Exception hierarchy for the attendant.

All attendant-specific exceptions inherit from AttendantError so a refresh
task can report any of them with a single except clause.
"""

from __future__ import annotations


class AttendantError(Exception):
    """Base exception for all attendant errors."""


class TransportError(AttendantError):
    """Raised when a request cannot be delivered (network, DNS, timeout)."""


class UpstreamStatusError(AttendantError):
    """Raised when an upstream answers with a non-success status."""

    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {body}")


class DecodeError(AttendantError):
    """Raised when an upstream payload cannot be decoded."""


class AuthError(AttendantError):
    """Raised when token issuance failed on every attempt."""

    def __init__(self, attempts: int, reason: str) -> None:
        self.attempts = attempts
        super().__init__(f"Token issuance failed after {attempts} attempts: {reason}")


class EnrichmentError(AttendantError):
    """Raised when a required enrichment step failed for one node."""

    def __init__(self, node: str, step: str, reason: str) -> None:
        self.node = node
        self.step = step
        super().__init__(f"Enrichment of node {node} failed at {step}: {reason}")


class ProviderNotSupportedError(AttendantError):
    """Raised by provider variants that have no adapter yet."""

    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Provider '{provider}' is not supported yet")


class ConfigurationError(AttendantError):
    """Raised for invalid configuration or missing required settings."""
