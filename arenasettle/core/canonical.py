"""
Canonical JSON (RFC 8785) and digests for journal entries.

Two writers that agree on an entry's fields agree on its bytes, so the
hash chain can be re-derived from the journal file alone. Values must be
JSON primitives; NaN and infinities have no canonical form and are
refused before they reach the encoder.

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""

import hashlib
import math
from typing import Any, Mapping

import jcs

from arenasettle.core.exceptions import JournalError


def _check(value: Any, where: str) -> None:
    if isinstance(value, float) and not math.isfinite(value):
        raise JournalError(f"Non-finite number at {where} has no canonical form")
    if isinstance(value, Mapping):
        for key, item in value.items():
            if not isinstance(key, str):
                raise JournalError(f"Non-string key {key!r} at {where}")
            _check(item, f"{where}.{key}")
    elif isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            _check(item, f"{where}[{i}]")


def canonical_bytes(fields: Mapping[str, Any]) -> bytes:
    _check(fields, "$")
    return jcs.canonicalize(dict(fields))


def digest(fields: Mapping[str, Any]) -> str:
    """Lowercase hex SHA-256 of the canonical form."""
    return hashlib.sha256(canonical_bytes(fields)).hexdigest()
