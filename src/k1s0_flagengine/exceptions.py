"""flagengine ライブラリの例外型定義"""

from __future__ import annotations


class FeatureFlagError(Exception):
    """flagengine ライブラリのエラー基底クラス。

    定義のパースと設定ファイルの読み込みでのみ送出される。
    評価 API (run / eval_feature) は例外を送出しない。
    """

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class FeatureFlagErrorCodes:
    """エラーコード定数。"""

    INVALID_DEFINITION: str = "INVALID_DEFINITION"
    CONFIG_READ: str = "CONFIG_READ_ERROR"
    CONFIG_PARSE: str = "CONFIG_PARSE_ERROR"
    CONFIG_VALIDATION: str = "CONFIG_VALIDATION_ERROR"
