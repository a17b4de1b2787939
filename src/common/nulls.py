from __future__ import annotations

from typing import Any


def replace_nulls(obj: Any) -> Any:
    """
    Return a copy of `obj` with every `None` removed, at any depth.

    - dict: keys whose value is None are dropped; other values are recursed.
    - list/tuple: None items are dropped; remaining items keep their relative
      order, but items after a dropped None move down by one index each.
    - anything else is returned unchanged.
    """
    if isinstance(obj, dict):
        return {k: replace_nulls(v) for k, v in obj.items() if v is not None}
    if isinstance(obj, (list, tuple)):
        return [replace_nulls(v) for v in obj if v is not None]
    return obj
