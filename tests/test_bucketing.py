"""バケッティングのユニットテスト"""

import pytest
from k1s0_flagengine.bucketing import (
    choose_variation,
    get_bucket_ranges,
    get_equal_weights,
    get_query_string_override,
    in_namespace,
    in_range,
)
from k1s0_flagengine.exceptions import FeatureFlagError, FeatureFlagErrorCodes
from k1s0_flagengine.models import Namespace


def test_get_bucket_ranges_total_equals_coverage() -> None:
    """範囲の幅の合計が coverage と等しいこと。"""
    for coverage in (0, 0.25, 0.5, 0.9, 1):
        ranges = get_bucket_ranges(3, coverage, [0.2, 0.3, 0.5])
        total = sum(end - start for start, end in ranges)
        assert total == pytest.approx(coverage)


def test_get_bucket_ranges_do_not_overlap() -> None:
    """範囲が重ならないこと。"""
    ranges = get_bucket_ranges(4, 0.7, [0.1, 0.2, 0.3, 0.4])
    for (_, prev_end), (next_start, _) in zip(ranges, ranges[1:]):
        assert prev_end <= next_start


def test_get_bucket_ranges_default_weights() -> None:
    """weights 省略時は均等割りになること。"""
    assert get_bucket_ranges(2) == [(0, 0.5), (0.5, 1)]


def test_get_bucket_ranges_tolerates_weight_rounding() -> None:
    """合計が 0.99〜1.01 の重みはそのまま使われること。"""
    ranges = get_bucket_ranges(2, 1, [0.5, 0.495])
    assert ranges[1] == pytest.approx((0.5, 0.995))


def test_get_equal_weights_sum() -> None:
    """均等な重みの合計がほぼ 1 になること。"""
    assert sum(get_equal_weights(7)) == pytest.approx(1)


def test_choose_variation_result_contains_n() -> None:
    """選択されたインデックスの範囲が n を含むこと。"""
    ranges = get_bucket_ranges(3, 0.6)
    for i in range(100):
        n = i / 100
        chosen = choose_variation(n, ranges)
        if chosen >= 0:
            assert in_range(n, ranges[chosen])
        else:
            assert not any(in_range(n, r) for r in ranges)


def test_in_range_is_half_open() -> None:
    """区間は [start, end) であること。"""
    assert in_range(0.2, (0.2, 0.5)) is True
    assert in_range(0.5, (0.2, 0.5)) is False


def test_in_namespace_accepts_sequence() -> None:
    """(id, start, end) シーケンスも受け付けること。"""
    assert in_namespace("2", ("ns1", 0, 0.4)) is True
    assert in_namespace("2", Namespace("ns1", 0.4, 1)) is False


def test_disjoint_namespaces_are_mutually_exclusive() -> None:
    """同じ名前空間 ID の重ならない範囲には同時に含まれないこと。"""
    first = Namespace("pricing", 0, 0.5)
    second = Namespace("pricing", 0.5, 1)
    for i in range(200):
        user_id = f"user-{i}"
        assert in_namespace(user_id, first) != in_namespace(user_id, second)


def test_in_namespace_invalid_value() -> None:
    """不正な名前空間は FeatureFlagError(INVALID_DEFINITION)。"""
    with pytest.raises(FeatureFlagError) as exc_info:
        in_namespace("1", ["ns1", 0])
    assert exc_info.value.code == FeatureFlagErrorCodes.INVALID_DEFINITION


def test_query_string_override_uses_first_value() -> None:
    """同じキーが複数ある場合は最初の値を使うこと。"""
    url = "https://example.com/page?exp=1&exp=0"
    assert get_query_string_override("exp", url, 2) == 1


def test_get_bucket_ranges_non_numeric_weights_use_equal_weights() -> None:
    """数値でない重みを含む場合は均等な重みになること。"""
    assert get_bucket_ranges(2, 1, [0.5, None]) == [(0, 0.5), (0.5, 1)]
    assert get_bucket_ranges(2, 1, [0.5, "0.5"]) == [(0, 0.5), (0.5, 1)]
    assert get_bucket_ranges(2, 1, [True, False]) == [(0, 0.5), (0.5, 1)]


def test_get_bucket_ranges_non_list_weights_use_equal_weights() -> None:
    """重みがリストでない場合は均等な重みになること。"""
    assert get_bucket_ranges(2, 1, "ab") == [(0, 0.5), (0.5, 1)]
    assert get_bucket_ranges(2, 1, 0.5) == [(0, 0.5), (0.5, 1)]


def test_get_bucket_ranges_nan_weight_uses_equal_weights() -> None:
    """NaN を含む重みは合計が不正として扱われること。"""
    assert get_bucket_ranges(2, 1, [float("nan"), 0.5]) == [(0, 0.5), (0.5, 1)]


def test_get_bucket_ranges_non_numeric_coverage_is_full() -> None:
    """数値でない coverage は 1 として扱われること。"""
    assert get_bucket_ranges(2, "half", None) == [(0, 0.5), (0.5, 1)]


@pytest.mark.parametrize(
    "url",
    [
        "http://example.com?my-test=+1",
        "http://example.com?my-test=%201",
        "http://example.com?my-test=1_0",
        "http://example.com?my-test=1%20",
    ],
)
def test_query_string_override_requires_plain_digits(url: str) -> None:
    """数字以外の文字を含む値は強制指定として扱わないこと。"""
    assert get_query_string_override("my-test", url, 20) is None
