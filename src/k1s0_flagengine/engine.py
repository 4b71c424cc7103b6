"""FeatureFlagEngine: フィーチャー評価と実験割り当て"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

import structlog

from .bucketing import (
    choose_variation,
    get_bucket_ranges,
    get_query_string_override,
    in_namespace,
)
from .condition import eval_condition
from .hashing import hash_string
from .models import (
    Context,
    Experiment,
    ExperimentResult,
    FeatureMap,
    FeatureResult,
    FeatureSource,
    TrackingCallback,
    parse_features,
)
from .tracking import Subscriber, SubscriptionRegistry, TrackingMemo
from .values import is_number

logger = structlog.stdlib.get_logger(__name__)


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class FeatureFlagEngine:
    """ユーザー属性とフィーチャー定義からバリエーションを決定するエンジン。

    ネットワークやストレージにはアクセスしない。可変状態 (コンテキスト、
    トラッキング記録、購読者) はインスタンスが保持し、内部で排他制御は行わない。
    """

    def __init__(self, context: Context | None = None) -> None:
        self._ctx = context or Context()
        self._tracked = TrackingMemo()
        self._subscriptions = SubscriptionRegistry()

    # --- コンテキストのアクセサ ---

    def get_attributes(self) -> dict[str, Any]:
        return self._ctx.attributes

    def set_attributes(self, attributes: dict[str, Any]) -> None:
        self._ctx.attributes = attributes

    def get_features(self) -> FeatureMap:
        return self._ctx.features

    def set_features(self, features: Mapping[str, Any]) -> None:
        """フィーチャー定義を丸ごと置き換える。

        Raises:
            FeatureFlagError: 定義の構造が不正な場合
        """
        self._ctx.features = parse_features(features)

    def get_forced_variations(self) -> dict[str, int]:
        return self._ctx.forced_variations

    def set_forced_variations(self, forced_variations: dict[str, int]) -> None:
        self._ctx.forced_variations = forced_variations

    def get_url(self) -> str:
        return self._ctx.url

    def set_url(self, url: str) -> None:
        self._ctx.url = url

    def is_enabled(self) -> bool:
        return self._ctx.enabled

    def set_enabled(self, enabled: bool) -> None:
        self._ctx.enabled = enabled

    def is_qa_mode(self) -> bool:
        return self._ctx.qa_mode

    def set_qa_mode(self, qa_mode: bool) -> None:
        self._ctx.qa_mode = qa_mode

    def set_tracking_callback(self, callback: TrackingCallback | None) -> None:
        self._ctx.tracking_callback = callback

    # --- フィーチャー評価 ---

    def is_on(self, key: str) -> bool:
        return self.eval_feature(key).on

    def is_off(self, key: str) -> bool:
        return self.eval_feature(key).off

    def get_feature_value(self, key: str, fallback: Any) -> Any:
        """フィーチャー値を返す。値が None の場合は fallback。"""
        value = self.eval_feature(key).value
        return value if value is not None else fallback

    def eval_feature(self, key: str) -> FeatureResult:
        """フィーチャーを評価する。

        ルールを先頭から評価し、最初に一致したルールの値を返す。
        一致するルールがなければデフォルト値を返す。

        Args:
            key: フィーチャーキー

        Returns:
            FeatureResult
        """
        log = logger.bind(feature=key)
        feature = self._ctx.features.get(key)
        if feature is None:
            log.warning("Unknown feature")
            return FeatureResult(None, FeatureSource.UNKNOWN_FEATURE)

        for rule in feature.rules:
            if rule.condition is not None and not eval_condition(
                self._ctx.attributes, rule.condition
            ):
                log.debug("Skip rule because of failed condition")
                continue

            if rule.has_force:
                if is_number(rule.coverage):
                    hash_value = self._get_hash_value(rule.hash_attribute)
                    if not hash_value:
                        log.debug("Skip rule because hash attribute is empty")
                        continue
                    if hash_string(hash_value + key) > rule.coverage:
                        log.debug("Skip rule because user is not in rollout")
                        continue
                log.debug("Force value from rule")
                return FeatureResult(rule.force, FeatureSource.FORCE)

            if rule.variations is None:
                log.warning("Skip invalid rule without force or variations")
                continue

            experiment = Experiment(
                key=rule.key or key,
                variations=rule.variations,
                weights=rule.weights,
                coverage=rule.coverage,
                namespace=rule.namespace,
                hash_attribute=rule.hash_attribute,
            )
            result = self.run(experiment)
            if not result.in_experiment:
                log.debug("Skip rule because user is not in experiment")
                continue

            log.debug("Assign value from experiment", variation=result.variation_id)
            return FeatureResult(result.value, FeatureSource.EXPERIMENT, experiment, result)

        log.debug("Use default value")
        return FeatureResult(feature.default_value, FeatureSource.DEFAULT_VALUE)

    # --- 実験 ---

    def run(self, experiment: Experiment) -> ExperimentResult:
        """実験を実行してバリエーションを割り当て、購読者に通知する。"""
        result = self._run(experiment)
        self._subscriptions.notify(experiment, result)
        return result

    def _run(self, experiment: Experiment) -> ExperimentResult:
        log = logger.bind(experiment=experiment.key)
        num_variations = len(experiment.variations)

        # 1. バリエーションが 2 未満
        if num_variations < 2:
            log.debug("Skip experiment with less than 2 variations")
            return self._get_result(experiment)

        # 2. エンジン無効
        if not self._ctx.enabled:
            log.debug("Skip experiment because engine is disabled")
            return self._get_result(experiment)

        # 3. URL クエリ文字列による強制
        qs_override = get_query_string_override(experiment.key, self._ctx.url, num_variations)
        if qs_override is not None:
            log.debug("Force variation from URL querystring", variation=qs_override)
            return self._get_result(experiment, qs_override)

        # 4. コンテキストによる強制
        forced = self._ctx.forced_variations.get(experiment.key)
        if forced is not None:
            log.debug("Force variation from context", variation=forced)
            return self._get_result(experiment, forced)

        # 5. 非アクティブ
        if not experiment.active:
            log.debug("Skip inactive experiment")
            return self._get_result(experiment)

        # 6. ハッシュ属性
        hash_value = self._get_hash_value(experiment.hash_attribute)
        if not hash_value:
            log.debug("Skip experiment because hash attribute is empty")
            return self._get_result(experiment)

        # 7. 名前空間
        if experiment.namespace is not None and not in_namespace(
            hash_value, experiment.namespace
        ):
            log.debug("Skip experiment because user is not in namespace")
            return self._get_result(experiment)

        # 8. ターゲティング条件
        if experiment.condition is not None and not eval_condition(
            self._ctx.attributes, experiment.condition
        ):
            log.debug("Skip experiment because user failed the condition")
            return self._get_result(experiment)

        # 9. バケット範囲とバリエーション選択
        coverage = experiment.coverage if experiment.coverage is not None else 1
        ranges = get_bucket_ranges(num_variations, coverage, experiment.weights)
        n = hash_string(hash_value + experiment.key)
        assigned = choose_variation(n, ranges)

        # 10. 範囲外
        if assigned < 0:
            log.debug("Skip experiment because user is not in coverage")
            return self._get_result(experiment)

        # 11. 実験定義による強制
        if experiment.force is not None:
            log.debug("Force variation from experiment", variation=experiment.force)
            return self._get_result(experiment, experiment.force)

        # 12. QA モード
        if self._ctx.qa_mode:
            log.debug("Skip experiment because of QA mode")
            return self._get_result(experiment)

        # 13. 割り当て確定
        result = self._get_result(experiment, assigned, in_experiment=True)
        self._tracked.track(self._ctx.tracking_callback, experiment, result)
        log.debug("Assigned variation", variation=assigned)
        return result

    def _get_hash_value(self, hash_attribute: str | None) -> str:
        return _stringify(self._ctx.attributes.get(hash_attribute or "id"))

    def _get_result(
        self,
        experiment: Experiment,
        variation_id: int = 0,
        in_experiment: bool = False,
    ) -> ExperimentResult:
        hash_attribute = experiment.hash_attribute or "id"
        if (
            not isinstance(variation_id, int)
            or isinstance(variation_id, bool)
            or variation_id < 0
            or variation_id >= len(experiment.variations)
        ):
            variation_id = 0
            in_experiment = False
        return ExperimentResult(
            in_experiment=in_experiment,
            variation_id=variation_id,
            value=experiment.variations[variation_id] if experiment.variations else None,
            hash_attribute=hash_attribute,
            hash_value=self._get_hash_value(hash_attribute),
        )

    # --- 購読 ---

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """実験結果の変化を購読する。戻り値を呼ぶと購読を解除する。"""
        return self._subscriptions.subscribe(callback)

    def get_all_results(self) -> dict[str, ExperimentResult]:
        return self._subscriptions.latest()

    def destroy(self) -> None:
        """トラッキング記録・購読者・最新結果を破棄する。"""
        self._tracked.clear()
        self._subscriptions.clear()
        self._ctx.tracking_callback = None
