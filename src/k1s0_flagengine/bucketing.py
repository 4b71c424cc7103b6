"""バケッティング: ハッシュ値からバリエーションを選択する"""

from __future__ import annotations

from collections.abc import Sequence
from urllib.parse import parse_qs, urlparse

import structlog

from .hashing import hash_string
from .models import Namespace
from .values import is_number

logger = structlog.stdlib.get_logger(__name__)

BucketRange = tuple[float, float]

_WEIGHT_SUM_MIN = 0.99
_WEIGHT_SUM_MAX = 1.01


def in_range(n: float, bucket_range: Sequence[float]) -> bool:
    """n が半開区間 [start, end) に含まれるかどうか。"""
    return bucket_range[0] <= n < bucket_range[1]


def in_namespace(hash_value: str, namespace: Namespace | Sequence) -> bool:
    """ユーザーが名前空間の範囲に含まれるかどうか。"""
    ns = Namespace.from_value(namespace)
    n = hash_string(hash_value + "__" + ns.id)
    return ns.start <= n < ns.end


def get_equal_weights(num_variations: int) -> list[float]:
    """均等な重みのリストを返す。"""
    if num_variations < 1:
        return []
    return [1 / num_variations for _ in range(num_variations)]


def get_bucket_ranges(
    num_variations: int,
    coverage: float = 1,
    weights: Sequence[float] | None = None,
) -> list[BucketRange]:
    """各バリエーションに割り当てるバケット範囲を計算する。

    coverage は [0, 1] に丸められ、数値でない場合は 1 として扱う。weights が
    数値のリストでない場合、長さがバリエーション数と異なる場合、合計が 1 から
    外れる場合は均等な重みに置き換える。
    各範囲は coverage 倍に縮小されるため、coverage < 1 では範囲の間に隙間ができる。

    Args:
        num_variations: バリエーション数
        coverage: 実験に含めるユーザーの割合
        weights: バリエーションごとの重み

    Returns:
        (start, end) のリスト
    """
    if not is_number(coverage):
        logger.debug("Coverage is not a number, using full coverage", coverage=coverage)
        coverage = 1
    coverage = min(max(coverage, 0), 1)

    if weights is None:
        weights = get_equal_weights(num_variations)
    elif not isinstance(weights, (list, tuple)) or not all(is_number(w) for w in weights):
        logger.debug("Weights are not a list of numbers, using equal weights")
        weights = get_equal_weights(num_variations)
    elif len(weights) != num_variations:
        logger.debug(
            "Weights length mismatch, using equal weights",
            weights=len(weights),
            variations=num_variations,
        )
        weights = get_equal_weights(num_variations)
    else:
        total = sum(weights)
        # NaN を含む合計もここで弾く
        if not _WEIGHT_SUM_MIN <= total <= _WEIGHT_SUM_MAX:
            logger.debug("Weights do not sum to 1, using equal weights", total=total)
            weights = get_equal_weights(num_variations)

    cumulative: float = 0
    ranges: list[BucketRange] = []
    for w in weights:
        start = cumulative
        cumulative += w
        ranges.append((start, start + coverage * w))
    return ranges


def choose_variation(n: float, ranges: Sequence[Sequence[float]]) -> int:
    """n を含む最初の範囲のインデックスを返す。該当なしは -1。"""
    for i, bucket_range in enumerate(ranges):
        if in_range(n, bucket_range):
            return i
    return -1


def get_query_string_override(key: str, url: str, num_variations: int) -> int | None:
    """URL のクエリ文字列で強制されたバリエーションを返す。

    値が整数でない場合や範囲外の場合は None (指定なし扱い)。
    """
    if not url:
        return None
    query = urlparse(url).query
    if not query:
        return None
    values = parse_qs(query).get(key)
    if not values or not values[0].isdigit():
        return None
    try:
        variation = int(values[0])
    except ValueError:
        return None
    if variation < 0 or variation >= num_variations:
        return None
    return variation
