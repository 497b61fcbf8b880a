"""
Unit tests for config.loaders module.

Tests cover:
- Path resolution against the project root
- YAML loading with environment variable expansion
- Error handling (missing files, invalid YAML, non-mapping roots)
"""

import os

import pytest
import yaml

from voicebridge.config.loaders import DEFAULT_CONFIG_PATH, load_yaml_with_env_expansion, resolve_config_path


class TestResolveConfigPath:
    """Tests for resolve_config_path function."""

    def test_absolute_path_unchanged(self):
        assert resolve_config_path("/etc/voicebridge/prod.yaml") == "/etc/voicebridge/prod.yaml"

    def test_default_path_resolved_under_project_root(self):
        """The default path lands next to the voicebridge package."""
        result = resolve_config_path(DEFAULT_CONFIG_PATH)

        assert os.path.isabs(result)
        assert result.endswith(os.path.join("config", "voicebridge.yaml"))
        project_root = os.path.dirname(os.path.dirname(result))
        assert os.path.isdir(os.path.join(project_root, "voicebridge"))


class TestLoadYamlWithEnvExpansion:
    """Tests for load_yaml_with_env_expansion function."""

    def test_realtime_block_with_env_reference(self, tmp_path, monkeypatch):
        """${VAR} references are expanded before parsing."""
        monkeypatch.setenv("VB_TEST_VOICE", "cedar")
        config_file = tmp_path / "voicebridge.yaml"
        config_file.write_text(
            "realtime:\n"
            "  voice: ${VB_TEST_VOICE}\n"
            "timing:\n"
            "  turn_response_delay_ms: 200\n"
        )

        result = load_yaml_with_env_expansion(str(config_file))

        assert result["realtime"]["voice"] == "cedar"
        assert result["timing"]["turn_response_delay_ms"] == 200

    def test_numeric_expansion_is_typed(self, tmp_path, monkeypatch):
        monkeypatch.setenv("VB_TEST_PORT", "9000")
        config_file = tmp_path / "voicebridge.yaml"
        config_file.write_text("server:\n  port: $VB_TEST_PORT\n")

        result = load_yaml_with_env_expansion(str(config_file))

        assert result["server"]["port"] == 9000

    def test_undefined_variable_left_in_place(self, tmp_path):
        config_file = tmp_path / "voicebridge.yaml"
        config_file.write_text("transfer:\n  sip_target_uri: ${VB_UNDEFINED_TARGET}\n")

        result = load_yaml_with_env_expansion(str(config_file))

        assert result["transfer"]["sip_target_uri"] == "${VB_UNDEFINED_TARGET}"

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError) as exc_info:
            load_yaml_with_env_expansion("/nonexistent/voicebridge.yaml")

        assert "not found" in str(exc_info.value).lower()

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "broken.yaml"
        config_file.write_text("realtime:\n  voice: marin\n    model: x\n")

        with pytest.raises(yaml.YAMLError) as exc_info:
            load_yaml_with_env_expansion(str(config_file))

        assert "invalid yaml" in str(exc_info.value).lower()

    def test_empty_file_is_empty_dict(self, tmp_path):
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("# nothing configured\n")

        assert load_yaml_with_env_expansion(str(config_file)) == {}

    def test_list_root_rejected(self, tmp_path):
        """The root of the file must be a mapping."""
        config_file = tmp_path / "list.yaml"
        config_file.write_text("- realtime\n- timing\n")

        with pytest.raises(yaml.YAMLError):
            load_yaml_with_env_expansion(str(config_file))
