"""Conversion of engine output into JSON-safe structures."""

import dataclasses
import math
from enum import Enum

import numpy as np
import pandas as pd

from chartstats.data.events import OtherLabel


def to_serializable(obj):
    """Recursively convert engine output to plain Python types.

    Dataclasses become dicts, enums their values, OtherLabel its label,
    tuples and arrays lists, numpy scalars Python scalars. Non-finite
    floats become None.
    """
    if isinstance(obj, OtherLabel):
        return obj.label
    if isinstance(obj, Enum):
        return obj.value
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_serializable(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, dict):
        return {str(to_serializable(k)): to_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_serializable(v) for v in obj]
    if isinstance(obj, np.ndarray):
        return [to_serializable(v) for v in obj.tolist()]
    if isinstance(obj, pd.DataFrame):
        return [to_serializable(row) for row in obj.to_dict(orient="records")]
    if isinstance(obj, (np.bool_, bool)):
        return bool(obj)
    if isinstance(obj, np.integer):
        return int(obj)
    if isinstance(obj, (np.floating, float)):
        value = float(obj)
        return value if math.isfinite(value) else None
    return obj
