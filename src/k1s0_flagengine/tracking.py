"""トラッキングの重複排除と購読者通知"""

from __future__ import annotations

from collections.abc import Callable

import structlog

from .models import Experiment, ExperimentResult, TrackingCallback

logger = structlog.stdlib.get_logger(__name__)

Subscriber = Callable[[Experiment, ExperimentResult], None]

TrackingKey = tuple[str, str, str, int]


class TrackingMemo:
    """トラッキングコールバックの呼び出し済みキーを記憶する。"""

    def __init__(self) -> None:
        self._tracked: set[TrackingKey] = set()

    def __len__(self) -> int:
        return len(self._tracked)

    def track(
        self,
        callback: TrackingCallback | None,
        experiment: Experiment,
        result: ExperimentResult,
    ) -> bool:
        """同一キーにつき 1 度だけコールバックを呼び出す。

        キーは (hash_attribute, hash_value, experiment_key, variation_id)。
        コールバックの例外はログに記録して握りつぶす。

        Returns:
            コールバックを呼び出した場合 True
        """
        if callback is None:
            return False
        key: TrackingKey = (
            result.hash_attribute,
            result.hash_value,
            experiment.key,
            result.variation_id,
        )
        if key in self._tracked:
            return False
        self._tracked.add(key)
        try:
            callback(experiment, result)
        except Exception as e:
            logger.warning(
                "Tracking callback raised an exception",
                experiment=experiment.key,
                error=str(e),
            )
        return True

    def clear(self) -> None:
        self._tracked.clear()


class SubscriptionRegistry:
    """実験結果の購読者と、実験キーごとの最新結果を保持する。"""

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self._latest: dict[str, ExperimentResult] = {}

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """購読者を登録し、登録解除用の関数を返す。"""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def notify(self, experiment: Experiment, result: ExperimentResult) -> bool:
        """前回の結果から in_experiment か variation_id が変化した場合のみ通知する。

        Returns:
            通知した場合 True
        """
        prev = self._latest.get(experiment.key)
        if (
            prev is not None
            and prev.in_experiment == result.in_experiment
            and prev.variation_id == result.variation_id
        ):
            return False
        self._latest[experiment.key] = result
        for subscriber in list(self._subscribers):
            try:
                subscriber(experiment, result)
            except Exception as e:
                logger.warning(
                    "Subscriber raised an exception",
                    experiment=experiment.key,
                    error=str(e),
                )
        return True

    def latest(self) -> dict[str, ExperimentResult]:
        """実験キーごとの最新結果のコピーを返す。"""
        return dict(self._latest)

    def __len__(self) -> int:
        return len(self._subscribers)

    def clear(self) -> None:
        self._subscribers.clear()
        self._latest.clear()
