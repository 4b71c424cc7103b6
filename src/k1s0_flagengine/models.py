"""flagengine データモデル"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from .exceptions import FeatureFlagError, FeatureFlagErrorCodes
from .values import UNDEFINED, is_truthy

if TYPE_CHECKING:
    from .config import EngineSettings


def _invalid(message: str) -> FeatureFlagError:
    return FeatureFlagError(FeatureFlagErrorCodes.INVALID_DEFINITION, message)


def _require_mapping(data: Any, what: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise _invalid(f"{what} must be a mapping, got {type(data).__name__}")
    return data


def _optional_condition(data: Mapping[str, Any], what: str) -> dict[str, Any] | None:
    condition = data.get("condition")
    if condition is not None and not isinstance(condition, Mapping):
        raise _invalid(f"{what} 'condition' must be a mapping, got {type(condition).__name__}")
    return condition


@dataclass(frozen=True)
class Namespace:
    """実験を相互排他にするためのハッシュ空間の部分範囲。"""

    id: str
    start: float
    end: float

    @classmethod
    def from_value(cls, value: Namespace | Sequence[Any]) -> Namespace:
        """Namespace または (id, start, end) の 3 要素シーケンスから生成する。"""
        if isinstance(value, Namespace):
            return value
        if isinstance(value, str) or not isinstance(value, Sequence) or len(value) != 3:
            raise _invalid(f"namespace must be [id, start, end], got {value!r}")
        ns_id, start, end = value
        try:
            return cls(id=str(ns_id), start=float(start), end=float(end))
        except (TypeError, ValueError) as e:
            raise FeatureFlagError(
                FeatureFlagErrorCodes.INVALID_DEFINITION,
                f"namespace range must be numeric, got {value!r}",
                cause=e,
            ) from e

    def to_list(self) -> list[Any]:
        return [self.id, self.start, self.end]


@dataclass
class Experiment:
    """実験定義。"""

    key: str
    variations: list[Any]
    weights: list[float] | None = None
    active: bool = True
    coverage: float | None = None
    condition: dict[str, Any] | None = None
    namespace: Namespace | None = None
    force: int | None = None
    hash_attribute: str = "id"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Experiment:
        data = _require_mapping(data, "experiment")
        if "key" not in data:
            raise _invalid("experiment is missing 'key'")
        variations = data.get("variations")
        if not isinstance(variations, list):
            raise _invalid(f"experiment '{data['key']}' must have a 'variations' list")
        namespace = data.get("namespace")
        return cls(
            key=str(data["key"]),
            variations=list(variations),
            weights=data.get("weights"),
            active=data.get("active", True),
            coverage=data.get("coverage"),
            condition=_optional_condition(data, f"experiment '{data['key']}'"),
            namespace=Namespace.from_value(namespace) if namespace is not None else None,
            force=data.get("force"),
            hash_attribute=data.get("hashAttribute") or "id",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "variations": self.variations,
            "weights": self.weights,
            "active": self.active,
            "coverage": self.coverage if self.coverage is not None else 1,
            "condition": self.condition,
            "namespace": self.namespace.to_list() if self.namespace else None,
            "force": self.force,
            "hashAttribute": self.hash_attribute,
        }


@dataclass
class FeatureRule:
    """フィーチャーのルール。force か variations のどちらかで振る舞いが決まる。"""

    key: str = ""
    variations: list[Any] | None = None
    weights: list[float] | None = None
    coverage: float | None = None
    condition: dict[str, Any] | None = None
    namespace: Namespace | None = None
    force: Any = UNDEFINED
    hash_attribute: str = "id"

    @property
    def has_force(self) -> bool:
        """force キーが指定されているか (値が null でも True)。"""
        return self.force is not UNDEFINED

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> FeatureRule:
        data = _require_mapping(data, "feature rule")
        variations = data.get("variations")
        if variations is not None and not isinstance(variations, list):
            raise _invalid("feature rule 'variations' must be a list")
        namespace = data.get("namespace")
        return cls(
            key=data.get("key") or "",
            variations=list(variations) if variations is not None else None,
            weights=data.get("weights"),
            coverage=data.get("coverage"),
            condition=_optional_condition(data, "feature rule"),
            namespace=Namespace.from_value(namespace) if namespace is not None else None,
            force=data["force"] if "force" in data else UNDEFINED,
            hash_attribute=data.get("hashAttribute") or "id",
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.key:
            data["key"] = self.key
        if self.variations is not None:
            data["variations"] = self.variations
        if self.weights is not None:
            data["weights"] = self.weights
        if self.coverage is not None:
            data["coverage"] = self.coverage
        if self.condition is not None:
            data["condition"] = self.condition
        if self.namespace is not None:
            data["namespace"] = self.namespace.to_list()
        if self.has_force:
            data["force"] = self.force
        if self.hash_attribute != "id":
            data["hashAttribute"] = self.hash_attribute
        return data


@dataclass
class Feature:
    """フィーチャー定義。ルールは先頭から順に評価される。"""

    default_value: Any = None
    rules: list[FeatureRule] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Feature:
        data = _require_mapping(data, "feature")
        rules = data.get("rules") or []
        if not isinstance(rules, list):
            raise _invalid("feature 'rules' must be a list")
        return cls(
            default_value=data.get("defaultValue"),
            rules=[r if isinstance(r, FeatureRule) else FeatureRule.from_dict(r) for r in rules],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "defaultValue": self.default_value,
            "rules": [rule.to_dict() for rule in self.rules],
        }


FeatureMap = dict[str, Feature]


def parse_features(features: Mapping[str, Any]) -> FeatureMap:
    """デコード済みのフィーチャー定義を FeatureMap に変換する。

    Raises:
        FeatureFlagError: 定義の構造が不正な場合 (INVALID_DEFINITION)
    """
    features = _require_mapping(features, "features")
    parsed: FeatureMap = {}
    for key, feature in features.items():
        if isinstance(feature, Feature):
            parsed[key] = feature
            continue
        try:
            parsed[key] = Feature.from_dict(feature)
        except FeatureFlagError as e:
            raise FeatureFlagError(
                code=e.code,
                message=f"Invalid feature '{key}': {e.args[0]}",
                cause=e,
            ) from e
    return parsed


@dataclass
class ExperimentResult:
    """実験の割り当て結果。in_experiment が False でも全フィールドが埋まる。"""

    in_experiment: bool
    variation_id: int
    value: Any
    hash_attribute: str
    hash_value: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "inExperiment": self.in_experiment,
            "variationId": self.variation_id,
            "value": self.value,
            "hashAttribute": self.hash_attribute,
            "hashValue": self.hash_value,
        }


class FeatureSource(StrEnum):
    """フィーチャー値の決定元。"""

    UNKNOWN_FEATURE = "unknownFeature"
    DEFAULT_VALUE = "defaultValue"
    FORCE = "force"
    EXPERIMENT = "experiment"


@dataclass
class FeatureResult:
    """フィーチャー評価結果。"""

    value: Any
    source: FeatureSource
    experiment: Experiment | None = None
    experiment_result: ExperimentResult | None = None

    @property
    def on(self) -> bool:
        return is_truthy(self.value)

    @property
    def off(self) -> bool:
        return not self.on

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "value": self.value,
            "on": self.on,
            "off": self.off,
            "source": str(self.source),
        }
        if self.experiment is not None:
            data["experiment"] = self.experiment.to_dict()
        if self.experiment_result is not None:
            data["experimentResult"] = self.experiment_result.to_dict()
        return data


TrackingCallback = Callable[[Experiment, ExperimentResult], None]


@dataclass
class Context:
    """評価コンテキスト。エンジンインスタンスが排他的に保持する。"""

    enabled: bool = True
    attributes: dict[str, Any] = field(default_factory=dict)
    url: str = ""
    features: FeatureMap = field(default_factory=dict)
    forced_variations: dict[str, int] = field(default_factory=dict)
    qa_mode: bool = False
    tracking_callback: TrackingCallback | None = None

    @classmethod
    def from_settings(
        cls,
        settings: EngineSettings,
        attributes: dict[str, Any] | None = None,
        features: Mapping[str, Any] | None = None,
        tracking_callback: TrackingCallback | None = None,
    ) -> Context:
        """EngineSettings からコンテキストを生成する。"""
        return cls(
            enabled=settings.enabled,
            attributes=attributes or {},
            url=settings.url,
            features=parse_features(features) if features else {},
            forced_variations=dict(settings.forced_variations),
            qa_mode=settings.qa_mode,
            tracking_callback=tracking_callback,
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Context:
        """camelCase の JSON 形式からコンテキストを生成する。"""
        data = _require_mapping(data, "context")
        return cls(
            enabled=data.get("enabled", True),
            attributes=data.get("attributes") or {},
            url=data.get("url") or "",
            features=parse_features(data.get("features") or {}),
            forced_variations=data.get("forcedVariations") or {},
            qa_mode=data.get("qaMode", False),
        )
