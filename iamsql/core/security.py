"""
core/security.py
----------------
Password hashing utilities.

Design decisions:
  - PBKDF2 with an HMAC core, algorithm named like "PBKDF2WithHmacSHA512"
    (the digest suffix picks the HMAC hash; "pbkdf2-sha512" is accepted too).
  - The salt is a random alphanumeric string, stored beside the hash; its
    UTF-8 bytes feed the KDF. The derived key is stored base64 encoded.
  - Every parameter problem is a ConfigurationError, raised as soon as the
    hasher is built and never retried.
"""

import base64
import re
from typing import Mapping, Optional

from passlib.crypto.digest import lookup_hash, pbkdf2_hmac
from passlib.pwd import genword
from passlib.utils import consteq

from iamsql.core.config import Settings, settings
from iamsql.core.exceptions import ConfigurationError

_ALGORITHM_PATTERN = re.compile(r"^pbkdf2(?:withhmac|[-_])?(sha[a-z0-9_]+)$", re.IGNORECASE)

# Node parameter names accepted by PasswordHasher.from_parameters
PARAMETER_SALT_LENGTH = "salt-length"
PARAMETER_HASH_ITERATION = "hash-iteration"
PARAMETER_KEY_LENGTH = "key-length"
PARAMETER_KEY_ALG = "key-alg"


def _resolve_digest(algorithm: str) -> str:
    match = _ALGORITHM_PATTERN.match(algorithm or "")
    if match is None:
        raise ConfigurationError(
            f"Unsupported key derivation algorithm '{algorithm}'",
            {"algorithm": algorithm},
        )
    digest = match.group(1).lower()
    try:
        lookup_hash(digest)
    except (ValueError, LookupError) as exc:
        raise ConfigurationError(
            f"Unsupported key derivation digest '{digest}'",
            {"algorithm": algorithm},
        ) from exc
    return digest


def _encode(value: str) -> bytes:
    # Lone surrogates, as produced by JSON decoding, must encode too
    return value.encode("utf-8", "surrogatepass")


def constant_time_equals(left: str, right: str) -> bool:
    """Compare two strings without leaking the position of the first difference."""
    return consteq(_encode(left), _encode(right))


class PasswordHasher:
    """
    Salted PBKDF2 password hashing.

    Args:
        salt_length: Number of alphanumeric characters of a generated salt.
        iterations: PBKDF2 iteration count.
        key_length: Derived key length, in bits. Must be a multiple of 8.
        algorithm: Algorithm identifier, e.g. "PBKDF2WithHmacSHA512".
    """

    def __init__(
        self,
        salt_length: int = 64,
        iterations: int = 10,
        key_length: int = 256,
        algorithm: str = "PBKDF2WithHmacSHA512",
    ) -> None:
        if salt_length < 1:
            raise ConfigurationError("Salt length must be positive", {"salt_length": salt_length})
        if iterations < 1:
            raise ConfigurationError("Hash iteration must be positive", {"iterations": iterations})
        if key_length < 8 or key_length % 8:
            raise ConfigurationError(
                "Key length must be a positive multiple of 8", {"key_length": key_length}
            )
        self.salt_length = salt_length
        self.iterations = iterations
        self.key_length = key_length
        self.algorithm = algorithm
        self.digest = _resolve_digest(algorithm)

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "PasswordHasher":
        config = config or settings
        return cls(
            salt_length=config.SALT_LENGTH,
            iterations=config.HASH_ITERATION,
            key_length=config.KEY_LENGTH,
            algorithm=config.KEY_ALG,
        )

    @classmethod
    def from_parameters(
        cls, parameters: Mapping[str, str], config: Optional[Settings] = None
    ) -> "PasswordHasher":
        """
        Build a hasher from per-node parameters, each one independently
        falling back to the settings value.
        """
        config = config or settings
        try:
            return cls(
                salt_length=int(parameters.get(PARAMETER_SALT_LENGTH, config.SALT_LENGTH)),
                iterations=int(parameters.get(PARAMETER_HASH_ITERATION, config.HASH_ITERATION)),
                key_length=int(parameters.get(PARAMETER_KEY_LENGTH, config.KEY_LENGTH)),
                algorithm=parameters.get(PARAMETER_KEY_ALG) or config.KEY_ALG,
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError("Invalid hashing parameter", {"error": str(exc)}) from exc

    def generate_salt(self) -> str:
        return genword(length=self.salt_length, charset="ascii_62")

    @property
    def placeholder_salt(self) -> str:
        """Salt used to spend the same work when there is no credential."""
        return "-" * self.salt_length

    def hash(self, password: str, salt: str) -> str:
        """Return the base64 encoded PBKDF2 key of the password with this salt."""
        secret, salt_bytes = _encode(password), _encode(salt)
        try:
            key = pbkdf2_hmac(
                self.digest,
                secret,
                salt_bytes,
                self.iterations,
                self.key_length // 8,
            )
        except (ValueError, TypeError) as exc:
            raise ConfigurationError(
                "Password hashing failed", {"algorithm": self.algorithm}
            ) from exc
        return base64.b64encode(key).decode("ascii")

    def verify(self, password: str, salt: str, expected: str) -> bool:
        return constant_time_equals(self.hash(password, salt), expected)
