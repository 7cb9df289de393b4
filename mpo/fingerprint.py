from __future__ import annotations

import hashlib
import math
from typing import Any

from pydantic import BaseModel

from .errors import FingerprintError
from .models import ProxySpec

DIGEST_SIZE = 8


def _encode(value: Any, out: list[bytes]) -> None:
    """Append the canonical encoding of value to out.

    Models: field wire name then value, in declaration order.
    Lists: length then items, in order. Dicts: items sorted by key.
    Scalars carry a one-letter type tag so 80 and "80" differ.
    """
    if isinstance(value, BaseModel):
        fields = type(value).model_fields
        out.append(b"M%d:" % len(fields))
        for attr, info in fields.items():
            _encode_str(info.alias or attr, out)
            _encode(getattr(value, attr), out)
    elif value is None:
        out.append(b"N")
    elif isinstance(value, bool):
        out.append(b"B1" if value else b"B0")
    elif isinstance(value, int):
        out.append(b"I%d;" % value)
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise FingerprintError(f"cannot fingerprint non-finite float {value!r}")
        out.append(b"F" + repr(value).encode() + b";")
    elif isinstance(value, str):
        out.append(b"S")
        _encode_str(value, out)
    elif isinstance(value, (list, tuple)):
        out.append(b"L%d:" % len(value))
        for item in value:
            _encode(item, out)
    elif isinstance(value, dict):
        try:
            keys = sorted(value)
        except TypeError as e:
            raise FingerprintError(f"mapping keys are not orderable: {e}") from e
        out.append(b"D%d:" % len(keys))
        for k in keys:
            if not isinstance(k, str):
                raise FingerprintError(f"mapping key {k!r} is not a string")
            _encode_str(k, out)
            _encode(value[k], out)
    else:
        raise FingerprintError(f"cannot fingerprint value of type {type(value).__name__}")


def _encode_str(s: str, out: list[bytes]) -> None:
    b = s.encode("utf-8")
    out.append(b"%d:" % len(b))
    out.append(b)


def canonical_bytes(spec: ProxySpec) -> bytes:
    out: list[bytes] = []
    _encode(spec, out)
    return b"".join(out)


def fingerprint(spec: ProxySpec) -> str:
    """Deterministic digest of a normalized spec, as lowercase hex."""
    h = hashlib.blake2b(canonical_bytes(spec), digest_size=DIGEST_SIZE)
    digest = h.hexdigest()
    if not digest:
        raise FingerprintError("empty digest")
    return digest
