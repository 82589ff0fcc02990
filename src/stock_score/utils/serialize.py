"""Convert analysis results to JSON-safe structures."""

import math
from collections.abc import Mapping
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

import numpy as np


def _clean_float(x: float) -> float | None:
    """NaN/inf become None, -0.0 becomes 0.0."""
    if math.isnan(x) or math.isinf(x):
        return None
    if x == 0.0:
        return 0.0
    return x


def to_jsonable(obj: Any) -> Any:
    """
    Recursively convert dataclasses, enums, mappings and dates.

    Enums are emitted as their string value ("StrongBullish", "TW"), dates and
    datetimes as ISO strings, tuples as lists. Numpy scalars are unwrapped.

    Args:
        obj: Any result object from the analysis pipeline

    Returns:
        Structure of dict/list/str/int/float/bool/None
    """
    if obj is None or isinstance(obj, bool):
        return obj
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_jsonable(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, Mapping):
        return {str(to_jsonable(k)): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_jsonable(item) for item in obj]
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, np.generic):
        return to_jsonable(obj.item())
    if isinstance(obj, float):
        return _clean_float(obj)
    return obj
