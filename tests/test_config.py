"""エンジン設定ローダーのユニットテスト"""

from pathlib import Path

import pytest
from k1s0_flagengine.config import EngineSettings, load_settings, merge_overrides
from k1s0_flagengine.exceptions import FeatureFlagError, FeatureFlagErrorCodes
from pydantic import ValidationError


def test_settings_defaults() -> None:
    """EngineSettings のデフォルト値確認。"""
    settings = EngineSettings()
    assert settings.enabled is True
    assert settings.qa_mode is False
    assert settings.url == ""
    assert settings.forced_variations == {}
    assert settings.log.level == "INFO"
    assert settings.log.format == "json"


def test_settings_invalid_log_format() -> None:
    """不正なログ形式で ValidationError が発生すること。"""
    with pytest.raises(ValidationError):
        EngineSettings.model_validate({"log": {"format": "xml"}})


def test_load_minimal_settings(tmp_path: Path) -> None:
    """最小設定ファイルの読み込み。"""
    settings_file = tmp_path / "flags.yaml"
    settings_file.write_text("qa_mode: true\nforced_variations:\n  checkout-exp: 1\n")
    settings = load_settings(settings_file)
    assert settings.qa_mode is True
    assert settings.forced_variations == {"checkout-exp": 1}


def test_load_empty_file(tmp_path: Path) -> None:
    """空ファイルはデフォルト値になること。"""
    settings_file = tmp_path / "empty.yaml"
    settings_file.write_text("")
    assert load_settings(settings_file) == EngineSettings()


def test_load_with_env_override(tmp_path: Path) -> None:
    """環境別設定のマージ確認。"""
    base_file = tmp_path / "base.yaml"
    base_file.write_text("enabled: true\nlog:\n  level: INFO\n  format: text\n")
    env_file = tmp_path / "prod.yaml"
    env_file.write_text("enabled: false\nlog:\n  level: WARNING\n")
    settings = load_settings(base_file, env_file)
    assert settings.enabled is False
    assert settings.log.level == "WARNING"
    assert settings.log.format == "text"


def test_load_env_not_exists(tmp_path: Path) -> None:
    """env_path が存在しない場合は base のみ使用。"""
    base_file = tmp_path / "base.yaml"
    base_file.write_text("url: https://example.com\n")
    settings = load_settings(base_file, tmp_path / "nonexistent.yaml")
    assert settings.url == "https://example.com"


def test_load_file_not_found(tmp_path: Path) -> None:
    """存在しないファイルで FeatureFlagError(CONFIG_READ_ERROR) が発生すること。"""
    with pytest.raises(FeatureFlagError) as exc_info:
        load_settings(tmp_path / "missing.yaml")
    assert exc_info.value.code == FeatureFlagErrorCodes.CONFIG_READ
    assert str(exc_info.value).startswith("CONFIG_READ_ERROR: ")


def test_load_invalid_yaml(tmp_path: Path) -> None:
    """不正 YAML で FeatureFlagError(CONFIG_PARSE_ERROR) が発生すること。"""
    bad_file = tmp_path / "bad.yaml"
    bad_file.write_text("log: {invalid: yaml: content:\n")
    with pytest.raises(FeatureFlagError) as exc_info:
        load_settings(bad_file)
    assert exc_info.value.code == FeatureFlagErrorCodes.CONFIG_PARSE


def test_load_non_mapping_yaml(tmp_path: Path) -> None:
    """トップレベルがマッピングでない YAML は CONFIG_PARSE_ERROR。"""
    bad_file = tmp_path / "list.yaml"
    bad_file.write_text("- a\n- b\n")
    with pytest.raises(FeatureFlagError) as exc_info:
        load_settings(bad_file)
    assert exc_info.value.code == FeatureFlagErrorCodes.CONFIG_PARSE


def test_load_validation_error(tmp_path: Path) -> None:
    """バリデーション失敗で FeatureFlagError(CONFIG_VALIDATION_ERROR) が発生すること。"""
    bad_file = tmp_path / "bad_settings.yaml"
    bad_file.write_text("forced_variations:\n  exp: not-a-number\n")
    with pytest.raises(FeatureFlagError) as exc_info:
        load_settings(bad_file)
    assert exc_info.value.code == FeatureFlagErrorCodes.CONFIG_VALIDATION
    assert isinstance(exc_info.value.__cause__, ValidationError)


def test_merge_overrides_does_not_mutate_base() -> None:
    """base が変更されないこと。"""
    base = {"log": {"level": "INFO"}}
    result = merge_overrides(base, {"log": {"format": "text"}})
    assert result == {"log": {"level": "INFO", "format": "text"}}
    assert base == {"log": {"level": "INFO"}}


def test_merge_overrides_forced_variations_by_key() -> None:
    """forced_variations は実験キー単位でマージされること。"""
    base = {"forced_variations": {"exp-a": 0, "exp-b": 1}, "url": "https://a.example"}
    override = {"forced_variations": {"exp-b": 2}, "url": "https://b.example"}
    result = merge_overrides(base, override)
    assert result["forced_variations"] == {"exp-a": 0, "exp-b": 2}
    assert result["url"] == "https://b.example"


def test_merge_overrides_replaces_non_mapping_section() -> None:
    """型が異なるセクションは override で置き換えられること。"""
    result = merge_overrides({"log": {"level": "INFO"}}, {"log": None})
    assert result == {"log": None}


def test_load_with_env_forced_variations(tmp_path: Path) -> None:
    """環境別設定の forced_variations がベースに追加されること。"""
    base_file = tmp_path / "base.yaml"
    base_file.write_text("forced_variations:\n  exp-a: 0\n")
    env_file = tmp_path / "stg.yaml"
    env_file.write_text("forced_variations:\n  exp-b: 1\n")
    settings = load_settings(base_file, env_file)
    assert settings.forced_variations == {"exp-a": 0, "exp-b": 1}
