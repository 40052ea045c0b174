"""Credential provider and redaction helpers."""

from .vault import (
    REDACTED,
    AndroidSigningCredentials,
    AscCredentials,
    CredentialStatus,
    EasToken,
    GooglePlayCredentials,
    SecretsProvider,
    SecretsReport,
    redact_secrets,
)

__all__ = [
    "REDACTED",
    "AndroidSigningCredentials",
    "AscCredentials",
    "CredentialStatus",
    "EasToken",
    "GooglePlayCredentials",
    "SecretsProvider",
    "SecretsReport",
    "redact_secrets",
]
