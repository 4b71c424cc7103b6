"""決定論的ハッシュのユニットテスト"""

from k1s0_flagengine.hashing import fnv1a32, hash_string


def test_fnv1a32_empty_string_is_offset_basis() -> None:
    """空文字列は FNV オフセット基底値になること。"""
    assert fnv1a32("") == 2166136261


def test_fnv1a32_golden_values() -> None:
    """既知の FNV-1a 32bit 値と一致すること。"""
    assert fnv1a32("a") == 3826002220
    assert fnv1a32("ab") == 1294271946
    assert fnv1a32("123") == 1916298011


def test_hash_string_golden_values() -> None:
    """hash_string が mod 1000 / 1000 を返すこと。"""
    assert hash_string("a") == 0.22
    assert hash_string("b") == 0.077
    assert hash_string("def") == 0.652


def test_hash_string_is_deterministic() -> None:
    """同一入力は同一出力になること。"""
    assert hash_string("user-42exp") == hash_string("user-42exp")


def test_hash_string_range() -> None:
    """出力が常に [0, 1) に収まること。"""
    for i in range(500):
        n = hash_string(f"user-{i}")
        assert 0 <= n < 1


def test_hash_string_non_ascii_uses_utf8_bytes() -> None:
    """非 ASCII 文字は UTF-8 バイト列としてハッシュされること。"""
    assert fnv1a32("é") == 513665217
    assert hash_string("日本") == 0.721
