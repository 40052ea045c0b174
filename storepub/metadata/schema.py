"""Field rules for the store metadata document.

The document is a JSON object with an ``ios`` and an ``android`` section
(see ``sample.sample_store_metadata``). ``check_schema`` walks it and
reports every violated rule with the dotted path of the offending field;
it never raises on malformed input.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Mapping
from urllib.parse import urlparse

from storepub.core.structured import StrDict, as_obj_list, as_str_dict

from .types import FieldIssue

__all__ = [
    "AGE_RATINGS",
    "ANDROID_TRACKS",
    "CONTENT_RATING_CATEGORIES",
    "IOS_RELEASE_TYPES",
    "check_android_section",
    "check_ios_section",
]

BUNDLE_ID_RE = re.compile(r"^[a-z0-9]+(\.[a-z0-9]+)+$")
PACKAGE_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)+$")
VERSION_RE = re.compile(r"^\d+\.\d+(\.\d+)?$")
BUILD_NUMBER_RE = re.compile(r"^\d+$")
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

IOS_RELEASE_TYPES = ("testflight-internal", "testflight-external", "appStore")
AGE_RATINGS = ("4+", "9+", "12+", "17+")
ANDROID_TRACKS = ("internal", "alpha", "beta", "production")
CONTENT_RATING_CATEGORIES = ("GENERAL", "PRE_TEEN", "TEEN", "MATURE")
_SUBSTANCE_LEVELS = ("NONE", "UNDECIDED", "FREQUENT", "GRAPHIC")
_GAMBLING_LEVELS = ("NONE", "UNDECIDED", "SIMULATED", "REAL_MONEY")
_DATA_TYPES = ("Location", "Contacts", "Messages", "Email", "Calendar", "Other")


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class _Checker:
    """Accumulates issues while reading a document section."""

    def __init__(self) -> None:
        self.issues: list[FieldIssue] = []

    def fail(self, path: str, message: str) -> None:
        self.issues.append(FieldIssue(field=path, message=message))

    def table(self, data: Mapping[str, object], key: str, path: str) -> StrDict | None:
        value = data.get(key)
        table = as_str_dict(value)
        if table is None:
            self.fail(_join(path, key), "Required" if value is None else "Expected object")
        return table

    def string(
        self,
        data: Mapping[str, object],
        key: str,
        path: str,
        *,
        required: bool = True,
        min_len: int | None = None,
        max_len: int | None = None,
        pattern: re.Pattern[str] | None = None,
        message: str | None = None,
    ) -> str | None:
        field = _join(path, key)
        value = data.get(key)
        if value is None:
            if required:
                self.fail(field, "Required")
            return None
        if not isinstance(value, str):
            self.fail(field, "Expected string")
            return None
        if min_len is not None and len(value) < min_len:
            self.fail(field, message or f"Must contain at least {min_len} character(s)")
            return value
        if max_len is not None and len(value) > max_len:
            self.fail(field, f"Must contain at most {max_len} character(s)")
            return value
        if pattern is not None and pattern.match(value) is None:
            self.fail(field, message or "Invalid format")
        return value

    def email(self, data: Mapping[str, object], key: str, path: str, message: str) -> None:
        value = self.string(data, key, path)
        if value is not None and EMAIL_RE.match(value) is None:
            self.fail(_join(path, key), message)

    def url(
        self,
        data: Mapping[str, object],
        key: str,
        path: str,
        *,
        required: bool = True,
        message: str = "Invalid url",
    ) -> None:
        value = self.string(data, key, path, required=required)
        if value is not None and not _is_url(value):
            self.fail(_join(path, key), message)

    def choice(
        self, data: Mapping[str, object], key: str, path: str, options: Collection[str]
    ) -> str | None:
        field = _join(path, key)
        value = data.get(key)
        if value is None:
            self.fail(field, "Required")
            return None
        if not isinstance(value, str) or value not in options:
            self.fail(field, f"Invalid enum value. Expected {' | '.join(options)}")
            return None
        return value

    def boolean(
        self, data: Mapping[str, object], key: str, path: str, *, required: bool = True
    ) -> bool | None:
        field = _join(path, key)
        value = data.get(key)
        if value is None:
            if required:
                self.fail(field, "Required")
            return None
        if not isinstance(value, bool):
            self.fail(field, "Expected boolean")
            return None
        return value

    def number(
        self,
        data: Mapping[str, object],
        key: str,
        path: str,
        *,
        required: bool = True,
        integer: bool = False,
        minimum: float | None = None,
        maximum: float | None = None,
        message: str | None = None,
    ) -> float | None:
        field = _join(path, key)
        value = data.get(key)
        if value is None:
            if required:
                self.fail(field, "Required")
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            self.fail(field, "Expected number")
            return None
        if integer and not isinstance(value, int):
            self.fail(field, "Expected integer")
            return None
        if minimum is not None and value < minimum:
            self.fail(field, message or f"Number must be greater than or equal to {minimum}")
        elif maximum is not None and value > maximum:
            self.fail(field, message or f"Number must be less than or equal to {maximum}")
        return float(value)

    def string_list(
        self,
        data: Mapping[str, object],
        key: str,
        path: str,
        *,
        required: bool = True,
        min_items: int | None = None,
        max_items: int | None = None,
        message: str | None = None,
    ) -> list[str] | None:
        field = _join(path, key)
        value = data.get(key)
        if value is None:
            if required:
                self.fail(field, "Required")
            return None
        items = as_obj_list(value)
        if items is None:
            self.fail(field, "Expected array")
            return None
        out: list[str] = []
        for i, item in enumerate(items):
            if not isinstance(item, str):
                self.fail(f"{field}.{i}", "Expected string")
                continue
            out.append(item)
        if min_items is not None and len(items) < min_items:
            self.fail(field, message or f"Array must contain at least {min_items} element(s)")
        elif max_items is not None and len(items) > max_items:
            self.fail(field, f"Array must contain at most {max_items} element(s)")
        return out


def check_ios_section(doc: Mapping[str, object]) -> list[FieldIssue]:
    c = _Checker()
    ios = c.table(doc, "ios", "")
    if ios is None:
        return c.issues
    p = "ios"

    c.string(ios, "bundleId", p, pattern=BUNDLE_ID_RE, message="Invalid bundle ID format")
    c.string(
        ios, "version", p, pattern=VERSION_RE, message="Version must be in format X.Y or X.Y.Z"
    )
    c.string(
        ios,
        "buildNumber",
        p,
        pattern=BUILD_NUMBER_RE,
        message="Build number must be a positive integer",
    )
    c.choice(ios, "releaseType", p, IOS_RELEASE_TYPES)
    c.string(ios, "releaseNotes", p, min_len=1, message="Release notes are required")
    c.string(ios, "appIcon", p, min_len=1, message="App icon path is required")
    c.choice(ios, "ageRating", p, AGE_RATINGS)
    c.boolean(ios, "signInRequired", p)

    compliance = c.table(ios, "exportCompliance", p)
    if compliance is not None:
        cp = f"{p}.exportCompliance"
        c.boolean(compliance, "usesEncryption", cp)
        c.boolean(compliance, "isExempt", cp)
        c.string_list(compliance, "encryptionAlgorithms", cp, required=False)
        c.boolean(compliance, "hasThirdPartyEncryption", cp, required=False)

    review = c.table(ios, "reviewInformation", p)
    if review is not None:
        rp = f"{p}.reviewInformation"
        c.string(review, "contactFirstName", rp, min_len=1, message="Contact first name is required")
        c.string(review, "contactLastName", rp, min_len=1, message="Contact last name is required")
        c.email(review, "contactEmail", rp, "Invalid contact email")
        c.string(review, "contactPhone", rp, min_len=10, message="Contact phone is required")
        for optional in ("demoUser", "demoPassword", "notes"):
            c.string(review, optional, rp, required=False)

    info = c.table(ios, "appInformation", p)
    if info is not None:
        ip = f"{p}.appInformation"
        c.string(info, "subtitle", ip, required=False, max_len=30)
        c.string(info, "promotionalText", ip, required=False, max_len=170)
        c.string(
            info,
            "description",
            ip,
            min_len=10,
            message="Description is required and must be at least 10 characters",
        )
        c.string_list(
            info,
            "keywords",
            ip,
            min_items=1,
            max_items=100,
            message="At least one keyword is required",
        )
        c.url(info, "privacyPolicyUrl", ip, message="Invalid privacy policy URL")
        c.url(info, "supportUrl", ip, message="Invalid support URL")
        c.url(info, "marketingUrl", ip, required=False)

    shots = c.table(ios, "screenshots", p)
    if shots is not None:
        sp = f"{p}.screenshots"
        for key, label, required in (
            ("iphone67", 'iPhone 6.7"', True),
            ("iphone65", 'iPhone 6.5"', False),
            ("iphone55", 'iPhone 5.5"', False),
            ("ipad129", 'iPad 12.9"', True),
            ("ipadPro3Gen", "iPad Pro 3rd Gen", False),
        ):
            c.string_list(
                shots,
                key,
                sp,
                required=required,
                min_items=3,
                max_items=10,
                message=f"{label} requires at least 3 screenshots",
            )

    return c.issues


def _check_data_entries(c: _Checker, items: object, path: str) -> None:
    entries = as_obj_list(items)
    if entries is None:
        c.fail(path, "Expected array")
        return
    for i, item in enumerate(entries):
        entry = as_str_dict(item)
        ep = f"{path}.{i}"
        if entry is None:
            c.fail(ep, "Expected object")
            continue
        c.choice(entry, "type", ep, _DATA_TYPES)
        c.string_list(entry, "purpose", ep)
        c.boolean(entry, "optional", ep, required=False)


def check_android_section(doc: Mapping[str, object]) -> list[FieldIssue]:
    c = _Checker()
    android = c.table(doc, "android", "")
    if android is None:
        return c.issues
    p = "android"

    c.string(
        android, "packageName", p, pattern=PACKAGE_NAME_RE, message="Invalid package name format"
    )
    c.string(
        android,
        "versionName",
        p,
        pattern=VERSION_RE,
        message="Version name must be in format X.Y or X.Y.Z",
    )
    c.number(
        android,
        "versionCode",
        p,
        integer=True,
        minimum=1,
        message="Version code must be a positive integer",
    )
    c.choice(android, "track", p, ANDROID_TRACKS)
    c.number(android, "userFraction", p, required=False, minimum=0, maximum=1)

    changelogs = c.table(android, "changelogs", p)
    if changelogs is not None:
        for locale in changelogs:
            c.string(
                changelogs, locale, f"{p}.changelogs", min_len=1, message="Changelog is required"
            )

    listing = c.table(android, "listing", p)
    if listing is not None:
        lp = f"{p}.listing"
        c.string(listing, "title", lp, min_len=1, max_len=30, message="Title is required")
        c.string(
            listing,
            "shortDescription",
            lp,
            min_len=80,
            max_len=80,
            message="Short description must be at least 80 characters",
        )
        c.string(
            listing,
            "fullDescription",
            lp,
            min_len=1,
            max_len=4000,
            message="Full description is required",
        )
        c.url(listing, "privacyPolicyUrl", lp, message="Invalid privacy policy URL")
        c.url(listing, "videoUrl", lp, required=False)

    graphics = c.table(android, "graphics", p)
    if graphics is not None:
        gp = f"{p}.graphics"
        c.string(graphics, "icon", gp, min_len=1, message="App icon path is required")
        c.string(
            graphics, "featureGraphic", gp, min_len=1, message="Feature graphic path is required"
        )
        c.string(graphics, "promoGraphic", gp, required=False)
        c.string(graphics, "tvBanner", gp, required=False)

    shots = c.table(android, "screenshots", p)
    if shots is not None:
        sp = f"{p}.screenshots"
        c.string_list(
            shots,
            "phone",
            sp,
            min_items=2,
            max_items=8,
            message="Phone screenshots require at least 2 images",
        )
        for key, label in (("sevenInch", "7-inch"), ("tenInch", "10-inch")):
            c.string_list(
                shots,
                key,
                sp,
                required=False,
                min_items=2,
                max_items=8,
                message=f"{label} screenshots require at least 2 images",
            )
        c.string_list(shots, "tv", sp, required=False)
        c.string_list(shots, "wear", sp, required=False)

    rating = c.table(android, "contentRating", p)
    if rating is not None:
        rp = f"{p}.contentRating"
        c.choice(rating, "category", rp, CONTENT_RATING_CATEGORIES)
        c.choice(rating, "alcoholTobacco", rp, _SUBSTANCE_LEVELS)
        c.choice(rating, "drugs", rp, _SUBSTANCE_LEVELS)
        c.choice(rating, "gambling", rp, _GAMBLING_LEVELS)

    safety = c.table(android, "dataSafety", p)
    if safety is not None:
        dp = f"{p}.dataSafety"
        c.boolean(safety, "collectsData", dp)
        if "sharedData" in safety:
            _check_data_entries(c, safety["sharedData"], f"{dp}.sharedData")
        if "collectedData" not in safety:
            c.fail(f"{dp}.collectedData", "Required")
        else:
            _check_data_entries(c, safety["collectedData"], f"{dp}.collectedData")

    return c.issues
