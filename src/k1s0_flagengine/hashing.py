"""決定論的ハッシュ (FNV-1a 32bit)"""

from __future__ import annotations

_FNV32_OFFSET_BASIS = 2166136261
_FNV32_PRIME = 16777619
_UINT32_MASK = 0xFFFFFFFF


def fnv1a32(value: str) -> int:
    """UTF-8 バイト列に対する FNV-1a 32bit ハッシュを返す。"""
    hval = _FNV32_OFFSET_BASIS
    for byte in value.encode("utf-8"):
        hval ^= byte
        hval = (hval * _FNV32_PRIME) & _UINT32_MASK
    return hval


def hash_string(value: str) -> float:
    """文字列を [0, 1) の浮動小数点数に写像する。

    全プラットフォームで同一ユーザーを同一バリエーションに割り当てるため、
    この計算は他言語実装とビット単位で一致しなければならない。

    Args:
        value: ハッシュ対象文字列

    Returns:
        0 以上 1 未満の値 (小数点以下 3 桁)
    """
    return (fnv1a32(value) % 1000) / 1000
