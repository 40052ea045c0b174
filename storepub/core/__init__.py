"""Core domain types: results, errors, settings."""

from .config import ConfigError, Settings, load_settings, load_settings_or_default
from .errors import ErrorCode, PublishError
from .result import Err, Ok, Result, is_err, is_ok

__all__ = [
    # config
    "ConfigError",
    "Settings",
    "load_settings",
    "load_settings_or_default",
    # errors
    "ErrorCode",
    "PublishError",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
]
