"""
Tests for the project manifest reader.
"""

import pytest

from checkout_controller.errors import ModelReadError
from checkout_controller.manifest import read_model, write_model
from checkout_controller.models import ProjectModel


class TestReadModel:
    """Tests for read_model()."""

    def test_read_full_manifest(self, tmp_path):
        """Test reading every manifest field."""
        manifest = tmp_path / "project.yaml"
        manifest.write_text(
            "group: org.example\n"
            "artifact: demo-core\n"
            "version: 1.2\n"
            "name: Demo Core\n"
            "packaging: library\n"
            "modules:\n"
            "  - demo-api\n"
            "  - demo-impl\n"
        )

        model = read_model(manifest)

        assert model.group == "org.example"
        assert model.artifact == "demo-core"
        assert model.version == "1.2"
        assert model.name == "Demo Core"
        assert model.packaging == "library"
        assert model.modules == ("demo-api", "demo-impl")

    def test_written_model_reads_back(self, tmp_path):
        """Test that write_model produces a readable manifest."""
        manifest = tmp_path / "nested" / "project.yaml"
        original = ProjectModel(artifact="demo", group="org.example", version="2.0.0")

        write_model(manifest, original)

        assert read_model(manifest) == original

    def test_missing_file(self, tmp_path):
        """Test that a missing manifest raises ModelReadError."""
        with pytest.raises(ModelReadError) as exc:
            read_model(tmp_path / "project.yaml")
        assert "file not found" in exc.value.message

    def test_invalid_yaml(self, tmp_path):
        """Test that broken YAML raises ModelReadError."""
        manifest = tmp_path / "project.yaml"
        manifest.write_text("artifact: [unclosed\n")

        with pytest.raises(ModelReadError) as exc:
            read_model(manifest)
        assert "invalid YAML" in exc.value.message

    def test_missing_artifact(self, tmp_path):
        """Test that a manifest without artifact is rejected."""
        manifest = tmp_path / "project.yaml"
        manifest.write_text("group: org.example\n")

        with pytest.raises(ModelReadError):
            read_model(manifest)

    def test_non_mapping_manifest(self, tmp_path):
        """Test that a list document is rejected."""
        manifest = tmp_path / "project.yaml"
        manifest.write_text("- a\n- b\n")

        with pytest.raises(ModelReadError):
            read_model(manifest)

    def test_bad_modules(self, tmp_path):
        """Test that modules must be a list of names."""
        manifest = tmp_path / "project.yaml"
        manifest.write_text("artifact: demo\nmodules: demo-api\n")

        with pytest.raises(ModelReadError):
            read_model(manifest)

    def test_numeric_scalars_read_as_text(self, tmp_path):
        """Test that unquoted numbers in text fields become strings."""
        manifest = tmp_path / "project.yaml"
        manifest.write_text("group: 2024\nartifact: demo\nname: 42\nversion: 3\n")

        model = read_model(manifest)

        assert model.group == "2024"
        assert model.name == "42"
        assert model.version == "3"

    def test_nested_group_rejected(self, tmp_path):
        manifest = tmp_path / "project.yaml"
        manifest.write_text("group:\n  id: org.example\nartifact: demo\n")

        with pytest.raises(ModelReadError) as exc:
            read_model(manifest)

        assert "'group'" in exc.value.message
