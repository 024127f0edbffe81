"""
Tests for settings and import configuration.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from checkout_controller.config import ControllerSettings, ProjectImportConfiguration, load_settings
from tests.conftest import model


class TestLoadSettings:
    """Tests for load_settings()."""

    def test_defaults_without_file(self, monkeypatch):
        for name in ("CHECKOUT_ROOT", "CHECKOUT_WORKSPACE_FILE", "CHECKOUT_BUNDLE_DIR",
                     "CHECKOUT_TIMEOUT", "CHECKOUT_LOG_FILE"):
            monkeypatch.delenv(name, raising=False)

        settings = load_settings()

        assert settings.manifest_name == "project.yaml"
        assert settings.alternate_marker == ".project"
        assert settings.log_file is None

    def test_yaml_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("CHECKOUT_TIMEOUT", raising=False)
        path = tmp_path / "settings.yaml"
        path.write_text("checkout_timeout: 60\ninclude_modules: true\nname_template: '[group]-[artifact]'\n")

        settings = load_settings(path)

        assert settings.checkout_timeout == 60
        assert settings.include_modules
        assert settings.import_configuration().name_template == "[group]-[artifact]"

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "settings.yaml"
        path.write_text("checkout_timeout: 60\n")
        monkeypatch.setenv("CHECKOUT_TIMEOUT", "15")
        monkeypatch.setenv("CHECKOUT_ROOT", str(tmp_path / "co"))

        settings = load_settings(path)

        assert settings.checkout_timeout == 15
        assert settings.checkout_root == Path(tmp_path / "co")

    def test_missing_file_uses_defaults(self, tmp_path):
        assert isinstance(load_settings(tmp_path / "absent.yaml"), ControllerSettings)

    def test_invalid_value_rejected(self):
        with pytest.raises(ValidationError):
            ControllerSettings(checkout_timeout=0)


class TestProjectImportConfiguration:
    """Tests for project name derivation."""

    def test_default_template_uses_artifact(self):
        assert ProjectImportConfiguration().project_name(model("demo")) == "demo"

    def test_placeholders(self):
        config = ProjectImportConfiguration(name_template="[group]:[artifact]-[version]")

        assert config.project_name(model("demo", version="2.1")) == "org.example:demo-2.1"

    def test_name_placeholder_falls_back_to_artifact(self):
        config = ProjectImportConfiguration(name_template="[name]")

        assert config.project_name(model("demo")) == "demo"
        assert config.project_name(model("demo", name="Demo App")) == "Demo App"

    def test_non_text_model_fields(self):
        config = ProjectImportConfiguration(name_template="[group]-[artifact]")

        assert config.project_name(model("demo", group=2024)) == "2024-demo"
