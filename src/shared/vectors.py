"""
pgvector text codec.

Vector columns are selected as text and written from text literals, so every
read goes through ``coerce_to_vector`` and every write through
``format_vector``.
"""

import math
from typing import Any, Sequence

from .errors import FormatError


def coerce_to_vector(raw: Any) -> list[float]:
    """
    Turn a stored embedding into a list of floats.

    Accepts a numeric sequence or the pgvector text form ``"[0.1,0.2,...]"``.
    Anything else raises FormatError.
    """
    if isinstance(raw, (list, tuple)):
        try:
            return [_to_float(x) for x in raw]
        except (TypeError, ValueError) as e:
            raise FormatError(f"Invalid vector element: {e}") from e

    if isinstance(raw, str):
        text = raw.strip()
        if not (text.startswith("[") and text.endswith("]")):
            raise FormatError(f"Invalid vector format: {text[:40]!r}")
        body = text[1:-1].strip()
        if not body:
            return []
        try:
            return [_to_float(part.strip()) for part in body.split(",")]
        except ValueError as e:
            raise FormatError(f"Invalid vector element: {e}") from e

    raise FormatError(f"Invalid vector format: {type(raw).__name__}")


def _to_float(x: Any) -> float:
    if isinstance(x, bool):
        raise TypeError("booleans are not vector components")
    value = float(x)
    if math.isnan(value) or math.isinf(value):
        raise ValueError(f"non-finite component {x!r}")
    return value


def format_vector(v: Sequence[float]) -> str:
    """pgvector text literal for ``v``."""
    return "[" + ",".join(repr(float(x)) for x in v) + "]"
