"""属性値の型分類と比較ユーティリティ"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any


class _Undefined:
    """属性パスが存在しないことを表す番兵。JSON の null (None) とは区別する。"""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEFINED"


UNDEFINED: Any = _Undefined()


def is_number(value: Any) -> bool:
    """bool を除く数値かどうか。"""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def get_type(value: Any) -> str:
    """属性値の型名を返す。

    Returns:
        "string", "number", "boolean", "array", "object", "null",
        "undefined", "unknown" のいずれか
    """
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return "unknown"


def is_truthy(value: Any) -> bool:
    """フィーチャー値の on/off 判定。

    null, undefined, false, 空文字列, 0 (および NaN) のみ偽。
    空のリストや空の辞書は真として扱う。
    """
    if value is None or value is UNDEFINED:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def values_equal(a: Any, b: Any) -> bool:
    """型を区別する構造的等価比較。

    bool と数値は等しくならない。シーケンスは順序を含めて比較し、
    マッピングはキー集合と値を比較する。
    """
    if a is UNDEFINED or b is UNDEFINED:
        return a is b
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if is_number(a) or is_number(b):
        return is_number(a) and is_number(b) and a == b
    if isinstance(a, str) or isinstance(b, str):
        return isinstance(a, str) and isinstance(b, str) and a == b
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if set(a.keys()) != set(b.keys()):
            return False
        return all(values_equal(a[k], b[k]) for k in a)
    return False
