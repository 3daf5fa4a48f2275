from __future__ import annotations

from dataclasses import asdict, is_dataclass
import math
from pathlib import Path
from typing import Any


def to_jsonable(obj: Any) -> Any:
    """
    Convert result objects to JSON-serializable data.

    Handles frozen dataclasses, tuples and nested objects. Non-finite floats
    (an infinite volume ratio) become None.
    """
    if obj is None or isinstance(obj, (str, bool, int)):
        return obj
    if isinstance(obj, float):
        return obj if math.isfinite(obj) else None
    if isinstance(obj, (tuple, list)):
        return [to_jsonable(item) for item in obj]
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, Path):
        return str(obj)
    if is_dataclass(obj) and not isinstance(obj, type):
        payload = {k: to_jsonable(v) for k, v in asdict(obj).items()}
        if hasattr(obj, "ok"):
            payload["ok"] = obj.ok
        return payload
    return str(obj)
