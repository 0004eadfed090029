"""
Lenient numeric input handling shared by every endpoint.

The till UI sends whatever is in its input boxes: numbers, numeric strings,
empty strings or nothing at all. All of that is normalised here, once, so the
routes agree on the rules:

- `to_number`: finite float, anything unparseable or non-finite becomes the
  default (0).
- `optional_number`: finite float or None; used where "not supplied" has its
  own meaning (partial payment change, recipe overrides).
- `to_int`: `to_number` truncated toward zero.
"""
import math
from typing import Annotated, Any, Optional

from pydantic import BeforeValidator


def optional_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        # "12,5" typed on a Turkish keyboard
        if value.count(",") == 1 and "." not in value:
            value = value.replace(",", ".")
    try:
        out = float(value)
    except (TypeError, ValueError):
        return None
    return out if math.isfinite(out) else None


def to_number(value: Any, default: float = 0.0) -> float:
    out = optional_number(value)
    return default if out is None else out


def to_int(value: Any, default: int = 0) -> int:
    return int(to_number(value, default))


def money(value: float) -> float:
    return round(value, 2)


LenientFloat = Annotated[float, BeforeValidator(to_number)]
LenientInt = Annotated[int, BeforeValidator(to_int)]
OptionalNumber = Annotated[Optional[float], BeforeValidator(optional_number)]
