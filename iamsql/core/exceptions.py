"""
core/exceptions.py
------------------
Error taxonomy of the directory.

  ConfigurationError      → fatal, never retried (bad hashing parameters).
  ValidationError         → caller-facing, recoverable (malformed DN, ...).
  InvalidCredentialError  → wrong old password on the change-password path.

"Not found" is never an exception: lookups return None and callers decide.
"""

from typing import Any, Dict, Optional


class IamError(Exception):
    """Base exception for the directory."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ConfigurationError(IamError):
    """Unsupported or misconfigured hashing algorithm / parameters."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONFIGURATION_ERROR", message, details)


class ValidationError(IamError):
    """A value presented to the directory is not acceptable."""

    def __init__(self, field: str, rule: str, message: Optional[str] = None):
        self.field = field
        self.rule = rule
        super().__init__(
            "VALIDATION_ERROR",
            message or f"{field}: {rule}",
            {"field": field, "rule": rule},
        )


class InvalidCredentialError(ValidationError):
    """The provided credential does not match the stored one."""

    def __init__(self, field: str = "password", rule: str = "login"):
        super().__init__(field, rule, f"Invalid credential for '{field}'")
        self.code = "INVALID_CREDENTIAL"
