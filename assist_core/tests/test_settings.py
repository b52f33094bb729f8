import pytest
from pydantic import ValidationError as PydanticValidationError

from assist_core.config.settings import AssistSettings


def test_yaml_config_file_is_loaded(monkeypatch, tmp_path):
    cfg_file = tmp_path / "assist.yaml"
    cfg_file.write_text("default_model: gpt-4.1\nstream_buffer_size: 8\n", encoding="utf-8")
    monkeypatch.setenv("ASSIST_CONFIG_FILE", str(cfg_file))
    monkeypatch.delenv("DEFAULT_MODEL", raising=False)
    monkeypatch.delenv("STREAM_BUFFER_SIZE", raising=False)
    monkeypatch.chdir(tmp_path)
    s = AssistSettings()
    assert s.default_model == "gpt-4.1"
    assert s.stream_buffer_size == 8


def test_environment_overrides_yaml(monkeypatch, tmp_path):
    cfg_file = tmp_path / "assist.yaml"
    cfg_file.write_text("default_model: from-yaml\n", encoding="utf-8")
    monkeypatch.setenv("ASSIST_CONFIG_FILE", str(cfg_file))
    monkeypatch.setenv("DEFAULT_MODEL", "from-env")
    monkeypatch.chdir(tmp_path)
    assert AssistSettings().default_model == "from-env"


def test_short_api_key_rejected(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(PydanticValidationError):
        AssistSettings(openai_api_key="short")
