"""エンジン設定の読み込み (YAML + pydantic)"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from .exceptions import FeatureFlagError, FeatureFlagErrorCodes


class LogSettings(BaseModel):
    """ログ設定。"""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"


class EngineSettings(BaseModel):
    """エンジン設定。"""

    enabled: bool = True
    qa_mode: bool = False
    url: str = ""
    forced_variations: dict[str, int] = Field(default_factory=dict)
    log: LogSettings = Field(default_factory=LogSettings)


# 環境別ファイルでキー単位に上書きできるセクション
_MERGEABLE_SECTIONS = ("log", "forced_variations")


def merge_overrides(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """環境別設定を base に重ねた新しい辞書を返す。

    log と forced_variations はキー単位でマージし、それ以外は丸ごと置き換える。
    """
    merged = {**base, **override}
    for section in _MERGEABLE_SECTIONS:
        base_section = base.get(section)
        override_section = override.get(section)
        if isinstance(base_section, dict) and isinstance(override_section, dict):
            merged[section] = {**base_section, **override_section}
    return merged


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise FeatureFlagError(
            code=FeatureFlagErrorCodes.CONFIG_READ,
            message=f"Failed to read settings file: {path}",
            cause=e,
        ) from e
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise FeatureFlagError(
            code=FeatureFlagErrorCodes.CONFIG_PARSE,
            message=f"Failed to parse YAML: {path}",
            cause=e,
        ) from e
    if not isinstance(data, dict):
        raise FeatureFlagError(
            code=FeatureFlagErrorCodes.CONFIG_PARSE,
            message=f"Settings file must contain a mapping: {path}",
        )
    return data


def load_settings(base_path: Path, env_path: Path | None = None) -> EngineSettings:
    """設定ファイルを読み込んで EngineSettings を返す。

    base_path: ベース設定ファイルパス（必須）
    env_path: 環境別設定ファイルパス（オプション）。存在する場合はベースにマージ。
    """
    data = _read_yaml(base_path)
    if env_path is not None and env_path.exists():
        data = merge_overrides(data, _read_yaml(env_path))
    try:
        return EngineSettings.model_validate(data)
    except ValidationError as e:
        raise FeatureFlagError(
            code=FeatureFlagErrorCodes.CONFIG_VALIDATION,
            message=f"Settings validation failed: {e}",
            cause=e,
        ) from e
