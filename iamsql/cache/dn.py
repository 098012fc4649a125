"""
cache/dn.py
-----------
Distinguished name helpers.

A DN is read right to left, from the root to the leaf:
    "cn=x,ou=sub,ou=eng,dc=acme,dc=com" sits under "ou=eng,dc=acme,dc=com".

Containment is a plain case-insensitive suffix test and does not parse,
because it runs for every entry of every filtered listing. Parsing (RFC 4514
syntax) is reserved for validation and depth computation.
"""

import re
import unicodedata
from typing import Iterable, TypeVar

from iamsql.core.exceptions import ValidationError

T = TypeVar("T")

_ATTRIBUTE_TYPE = re.compile(r"^(?:[A-Za-z][A-Za-z0-9-]*|\d+(?:\.\d+)*)$")
_SPECIAL = set(',+"\\<>;=# ')
_HEX = set("0123456789abcdefABCDEF")


def normalize(value: str) -> str:
    """Lowercase the value and strip its accents. Used for all identifiers."""
    decomposed = unicodedata.normalize("NFD", value.strip().lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def _invalid(dn: str, reason: str) -> ValidationError:
    return ValidationError("dn", "invalid-dn", f"Malformed DN '{dn}': {reason}")


def _split(dn: str) -> list[tuple[str, str]]:
    """Split on unescaped, unquoted ',' / '+'. Returns (ava, separator) pairs."""
    parts = []
    current = []
    quoted = False
    i = 0
    while i < len(dn):
        char = dn[i]
        if char == "\\":
            if i + 1 >= len(dn):
                raise _invalid(dn, "dangling escape")
            current.append(dn[i:i + 2])
            i += 2
            continue
        if char == '"':
            quoted = not quoted
        elif char in ",+" and not quoted:
            parts.append(("".join(current), char))
            current = []
            i += 1
            continue
        current.append(char)
        i += 1
    if quoted:
        raise _invalid(dn, "unterminated quote")
    parts.append(("".join(current), ""))
    return parts


def _unescape(dn: str, value: str) -> str:
    """
    Decode the escapes of an attribute value. Consecutive hex pairs are the
    UTF-8 octets of one or more characters.
    """
    # (text, escaped) pairs: escaped spaces and quotes are never stripped
    chars: list[tuple[str, bool]] = []
    octets = bytearray()

    def flush() -> None:
        if octets:
            try:
                chars.append((octets.decode("utf-8"), True))
            except UnicodeDecodeError:
                raise _invalid(dn, f"invalid UTF-8 escape in '{value}'") from None
            octets.clear()

    value = value.lstrip()
    i = 0
    while i < len(value):
        char = value[i]
        if char == "\\":
            following = value[i + 1:i + 3]
            if len(following) == 2 and set(following) <= _HEX:
                octets.append(int(following, 16))
                i += 3
                continue
            flush()
            if following[:1] in _SPECIAL:
                chars.append((following[0], True))
                i += 2
                continue
            raise _invalid(dn, f"invalid escape in '{value}'")
        flush()
        chars.append((char, False))
        i += 1
    flush()

    while chars and chars[-1] == (" ", False):
        chars.pop()
    if len(chars) >= 2 and chars[0] == ('"', False) and chars[-1] == ('"', False):
        chars = chars[1:-1]
    return "".join(text for text, _ in chars)


def parse_dn(dn: str) -> list[tuple[str, str, str]]:
    """
    Parse and validate a DN.

    Returns:
        The (attribute, value, separator) components, leaf first. The
        separator is the one following the component: "," "+" or "".

    Raises:
        ValidationError: the DN is empty or malformed.
    """
    if not dn or not dn.strip():
        raise ValidationError("dn", "invalid-dn", "Empty DN")
    components = []
    for ava, separator in _split(dn):
        attribute, equal, value = ava.partition("=")
        attribute = attribute.strip()
        if not equal:
            raise _invalid(dn, f"no '=' in '{ava}'")
        if not _ATTRIBUTE_TYPE.match(attribute):
            raise _invalid(dn, f"invalid attribute type '{attribute}'")
        components.append((attribute, _unescape(dn, value), separator))
    return components


def dn_depth(dn: str) -> int:
    """Number of RDN components. Multi-valued RDNs ("cn=a+sn=b") count once."""
    return sum(1 for _, _, separator in parse_dn(dn) if separator != "+")


def to_rdn(dn: str) -> str:
    """Normalized value of the leaf RDN: "ou=quarantine" → "quarantine"."""
    return normalize(parse_dn(dn)[0][1])


def is_ancestor_or_self(parent_dn: str, dn: str) -> bool:
    """True when `dn` equals `parent_dn` or lies anywhere under it."""
    parent = parent_dn.lower()
    child = dn.lower()
    return child == parent or child.endswith("," + parent)


def build_ancestor_chain(containers: Iterable[T], target: T) -> list[T]:
    """
    Return the containers whose DN is an ancestor of, or equal to, the DN of
    `target`, from the root to `target` itself.
    """
    chain = [c for c in containers if is_ancestor_or_self(c.dn, target.dn)]
    return sorted(chain, key=lambda c: dn_depth(c.dn))
