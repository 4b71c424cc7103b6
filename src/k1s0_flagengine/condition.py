"""MongoDB 風のターゲティング条件評価"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

import structlog

from .values import UNDEFINED, get_type, is_number, is_truthy, values_equal

logger = structlog.stdlib.get_logger(__name__)

_ARRAY_TYPES = (list, tuple)


def eval_condition(attributes: Any, condition: Mapping[str, Any]) -> bool:
    """属性ドキュメントが条件式を満たすかどうかを評価する。

    $or / $nor / $and / $not を先に評価し、それ以外のキーは
    ドット区切りの属性パスとして全て満たす必要がある (暗黙の AND)。

    Args:
        attributes: ユーザー属性 (ネストした辞書)
        condition: 条件式

    Returns:
        条件を満たす場合 True。条件式がマッピングでない場合は False
    """
    if not isinstance(condition, Mapping):
        logger.debug("Condition is not a mapping", condition=condition)
        return False
    if "$or" in condition:
        return _eval_or(attributes, condition["$or"])
    if "$nor" in condition:
        return not _eval_or(attributes, condition["$nor"])
    if "$and" in condition:
        return _eval_and(attributes, condition["$and"])
    if "$not" in condition:
        return not eval_condition(attributes, condition["$not"])

    for key, value in condition.items():
        if not isinstance(key, str):
            return False
        if not eval_condition_value(value, get_path(attributes, key)):
            return False
    return True


def _eval_or(attributes: Any, conditions: Any) -> bool:
    if not isinstance(conditions, _ARRAY_TYPES):
        return False
    if len(conditions) == 0:
        return True
    return any(eval_condition(attributes, c) for c in conditions)


def _eval_and(attributes: Any, conditions: Any) -> bool:
    if not isinstance(conditions, _ARRAY_TYPES):
        return False
    return all(eval_condition(attributes, c) for c in conditions)


def get_path(attributes: Any, path: str) -> Any:
    """ドット区切りのパスで属性値を取得する。存在しない場合は UNDEFINED。"""
    current = attributes
    for segment in path.split("."):
        if isinstance(current, Mapping) and segment in current:
            current = current[segment]
        else:
            return UNDEFINED
    return current


def is_operator_object(obj: Any) -> bool:
    """全てのキーが "$" で始まるマッピング (空を含む) かどうか。"""
    if not isinstance(obj, Mapping):
        return False
    return all(isinstance(key, str) and key.startswith("$") for key in obj)


def eval_condition_value(condition_value: Any, attribute_value: Any) -> bool:
    """単一の属性値に対して条件値を評価する。"""
    if is_operator_object(condition_value):
        for operator, value in condition_value.items():
            if not eval_operator_condition(operator, attribute_value, value):
                return False
        return True
    return values_equal(condition_value, attribute_value)


def elem_match(condition: Any, attribute_value: Any) -> bool:
    """配列の要素のいずれかが条件を満たすかどうか。"""
    if not isinstance(attribute_value, _ARRAY_TYPES):
        return False
    operator_object = is_operator_object(condition)
    for item in attribute_value:
        if operator_object:
            if eval_condition_value(condition, item):
                return True
        elif isinstance(condition, Mapping) and eval_condition(item, condition):
            return True
    return False


def _compare(attribute_value: Any, condition_value: Any) -> int | None:
    # 数値同士または文字列同士のみ比較可能
    if is_number(attribute_value) and is_number(condition_value):
        pass
    elif isinstance(attribute_value, str) and isinstance(condition_value, str):
        pass
    else:
        return None
    if attribute_value < condition_value:
        return -1
    if attribute_value > condition_value:
        return 1
    return 0


def _contains(haystack: Any, needle: Any) -> bool:
    return any(values_equal(item, needle) for item in haystack)


def eval_operator_condition(
    operator: str, attribute_value: Any, condition_value: Any
) -> bool:
    """演算子 1 つを評価する。未知の演算子は False。"""
    if operator == "$eq":
        return values_equal(attribute_value, condition_value)
    if operator == "$ne":
        return not values_equal(attribute_value, condition_value)
    if operator in ("$lt", "$lte", "$gt", "$gte"):
        cmp = _compare(attribute_value, condition_value)
        if cmp is None:
            return False
        if operator == "$lt":
            return cmp < 0
        if operator == "$lte":
            return cmp <= 0
        if operator == "$gt":
            return cmp > 0
        return cmp >= 0
    if operator == "$regex":
        if not isinstance(attribute_value, str) or not isinstance(condition_value, str):
            return False
        try:
            return re.search(condition_value, attribute_value) is not None
        except re.error:
            logger.debug("Invalid regex in condition", pattern=condition_value)
            return False
    if operator == "$in":
        if not isinstance(condition_value, _ARRAY_TYPES):
            return False
        return _contains(condition_value, attribute_value)
    if operator == "$nin":
        if not isinstance(condition_value, _ARRAY_TYPES):
            return False
        return not _contains(condition_value, attribute_value)
    if operator == "$elemMatch":
        return elem_match(condition_value, attribute_value)
    if operator == "$size":
        if not isinstance(attribute_value, _ARRAY_TYPES):
            return False
        return eval_condition_value(condition_value, len(attribute_value))
    if operator == "$all":
        if not isinstance(attribute_value, _ARRAY_TYPES):
            return False
        if not isinstance(condition_value, _ARRAY_TYPES):
            return False
        for cond in condition_value:
            if not any(eval_condition_value(cond, item) for item in attribute_value):
                return False
        return True
    if operator == "$exists":
        missing = attribute_value is None or attribute_value is UNDEFINED
        if is_truthy(condition_value):
            return not missing
        return missing
    if operator == "$type":
        return get_type(attribute_value) == condition_value
    if operator == "$not":
        return not eval_condition_value(condition_value, attribute_value)

    logger.debug("Unknown condition operator", operator=operator)
    return False
