"""Credential loading, decoding and redaction.

Credentials are read once from an environment mapping. Base64 payloads are
decoded into a ``bytearray`` that is zeroed as soon as the text has been
extracted; binary material that must stay in memory (the Android keystore)
is kept as a ``bytearray`` and cleared with ``AndroidSigningCredentials.clear``.
None of the credential types print their secret fields in ``repr``.
"""

from __future__ import annotations

import base64
import binascii
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field

__all__ = [
    "AndroidSigningCredentials",
    "AscCredentials",
    "CredentialStatus",
    "EasToken",
    "GooglePlayCredentials",
    "REDACTED",
    "SecretsProvider",
    "SecretsReport",
    "clear_buffer",
    "decode_base64_secret",
    "decode_base64_to_str",
    "redact_secrets",
]

REDACTED = "***REDACTED***"

_SECRET_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"-----BEGIN [A-Z ]+-----[\s\S]*?-----END [A-Z ]+-----"),
    re.compile(r'"private_key"\s*:\s*"[^"]{20,}"'),
    re.compile(r'"key"\s*:\s*"[^"]{20,}"'),
    re.compile(r"sk-[A-Za-z0-9]{20,}"),
    re.compile(r"[a-zA-Z0-9]{32,}"),
)


def redact_secrets(message: str, secrets: Mapping[str, str] | None = None) -> str:
    """Replace secret-looking substrings (and any known ``secrets`` values)."""
    redacted = message
    for pattern in _SECRET_PATTERNS:
        redacted = pattern.sub(REDACTED, redacted)

    for value in (secrets or {}).values():
        if value and len(value) > 10:
            redacted = redacted.replace(value, REDACTED)
    return redacted


def decode_base64_secret(value: str | None) -> bytearray | None:
    """Decode base64 into a mutable buffer the caller must clear."""
    if not value:
        return None
    try:
        return bytearray(base64.b64decode(value, validate=True))
    except (binascii.Error, ValueError):
        return None


def clear_buffer(buffer: bytearray | None) -> None:
    """Overwrite ``buffer`` with zeros in place."""
    if buffer is None:
        return
    for i in range(len(buffer)):
        buffer[i] = 0


def decode_base64_to_str(value: str | None) -> str | None:
    """Decode base64 text; the intermediate buffer is zeroed before returning."""
    buffer = decode_base64_secret(value)
    if buffer is None:
        return None
    try:
        return buffer.decode("utf-8")
    except UnicodeDecodeError:
        return None
    finally:
        clear_buffer(buffer)


@dataclass(frozen=True, slots=True)
class AscCredentials:
    """App Store Connect API key."""

    issuer_id: str
    key_id: str
    private_key: str = field(repr=False)
    team_id: str | None = None


@dataclass(frozen=True, slots=True)
class GooglePlayCredentials:
    """Google Play service account."""

    service_account_json: str = field(repr=False)


@dataclass(slots=True)
class AndroidSigningCredentials:
    keystore: bytearray = field(repr=False)
    key_alias: str
    keystore_password: str = field(repr=False)
    key_password: str = field(repr=False)

    def clear(self) -> None:
        clear_buffer(self.keystore)


@dataclass(frozen=True, slots=True)
class EasToken:
    """Expo access token for EAS Submit."""

    value: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class SecretsReport:
    valid: bool
    missing: tuple[str, ...]
    warnings: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class CredentialStatus:
    ios: bool
    android: bool
    android_signing: bool
    eas: bool
    fastlane: bool


def _truthy(value: str | None, default: bool) -> bool:
    if not value:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class SecretsProvider:
    """Environment-backed credential and flag provider.

    Credential bundles are decoded lazily and cached. ``dry_run`` defaults to
    True so an unconfigured process can never reach a real store.
    """

    def __init__(self, env: Mapping[str, str]) -> None:
        self._env = dict(env)
        self._asc: AscCredentials | None = None
        self._play: GooglePlayCredentials | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> SecretsProvider:
        return cls(os.environ if env is None else env)

    def _get(self, key: str) -> str:
        return self._env.get(key, "").strip()

    @property
    def dry_run(self) -> bool:
        return _truthy(self._env.get("PUBLISH_DRY_RUN"), default=True)

    @property
    def enabled(self) -> bool:
        """Feature gate for store publishing (``MOBILE_FEATURES``)."""
        raw = self._get("MOBILE_FEATURES")
        if raw == "*":
            return True
        features = {f.strip().lower() for f in raw.split(",") if f.strip()}
        return "store_publish" in features

    def asc_credentials(self) -> AscCredentials | None:
        if self._asc is not None:
            return self._asc
        issuer_id = self._get("ASC_ISSUER_ID")
        key_id = self._get("ASC_KEY_ID")
        private_key = decode_base64_to_str(self._get("ASC_PRIVATE_KEY_B64"))
        if not issuer_id or not key_id or not private_key:
            return None
        self._asc = AscCredentials(
            issuer_id=issuer_id,
            key_id=key_id,
            private_key=private_key,
            team_id=self._get("ASC_TEAM_ID") or None,
        )
        return self._asc

    def google_play_credentials(self) -> GooglePlayCredentials | None:
        if self._play is not None:
            return self._play
        sa_json = decode_base64_to_str(self._get("GOOGLE_PLAY_SERVICE_ACCOUNT_JSON_B64"))
        if not sa_json:
            return None
        self._play = GooglePlayCredentials(service_account_json=sa_json)
        return self._play

    def android_signing_credentials(self) -> AndroidSigningCredentials | None:
        """Return signing material; the caller owns and must ``clear()`` it."""
        key_alias = self._get("ANDROID_KEY_ALIAS")
        keystore_password = self._get("ANDROID_KEYSTORE_PASSWORD")
        key_password = self._get("ANDROID_KEY_PASSWORD")
        if not key_alias or not keystore_password or not key_password:
            return None
        keystore = decode_base64_secret(self._get("ANDROID_KEYSTORE_B64"))
        if keystore is None:
            return None
        return AndroidSigningCredentials(
            keystore=keystore,
            key_alias=key_alias,
            keystore_password=keystore_password,
            key_password=key_password,
        )

    def eas_token(self) -> EasToken | None:
        token = self._get("EAS_ACCESS_TOKEN")
        return EasToken(token) if token else None

    def fastlane_env(self) -> dict[str, str] | None:
        """Environment for fastlane, or None when no Apple ID login is set."""
        user = self._get("FASTLANE_USER")
        password = self._get("FASTLANE_PASSWORD")
        if not user or not password:
            return None
        out = {"FASTLANE_USER": user, "FASTLANE_PASSWORD": password}
        app_password = self._get("FASTLANE_APPLE_APPLICATION_SPECIFIC_PASSWORD")
        if app_password:
            out["FASTLANE_APPLE_APPLICATION_SPECIFIC_PASSWORD"] = app_password
        return out

    def known_secrets(self) -> dict[str, str]:
        """Raw secret values, for exact-match redaction only."""
        keys = (
            "ASC_PRIVATE_KEY_B64",
            "GOOGLE_PLAY_SERVICE_ACCOUNT_JSON_B64",
            "ANDROID_KEYSTORE_B64",
            "ANDROID_KEYSTORE_PASSWORD",
            "ANDROID_KEY_PASSWORD",
            "EAS_ACCESS_TOKEN",
            "FASTLANE_PASSWORD",
        )
        return {k: self._get(k) for k in keys if self._get(k)}

    def validate_required_secrets(self) -> SecretsReport:
        missing: list[str] = []
        warnings: list[str] = []

        if self.asc_credentials() is None:
            missing.append(
                "iOS App Store Connect credentials (ASC_ISSUER_ID, ASC_KEY_ID, ASC_PRIVATE_KEY_B64)"
            )
        if self.google_play_credentials() is None:
            missing.append("Google Play service account JSON (GOOGLE_PLAY_SERVICE_ACCOUNT_JSON_B64)")

        signing = self.android_signing_credentials()
        if signing is None:
            warnings.append(
                "Android signing credentials not set. Required for AAB/APK builds, "
                "but optional for metadata updates."
            )
        else:
            signing.clear()

        return SecretsReport(valid=not missing, missing=tuple(missing), warnings=tuple(warnings))

    def credential_status(self) -> CredentialStatus:
        signing = self.android_signing_credentials()
        if signing is not None:
            signing.clear()
        return CredentialStatus(
            ios=self.asc_credentials() is not None,
            android=self.google_play_credentials() is not None,
            android_signing=signing is not None,
            eas=self.eas_token() is not None,
            fastlane=self.fastlane_env() is not None,
        )
