"""
Tests for checkout location cleanup.

Tests covering:
- Removal of folders and files
- Idempotence
- Failures recorded as warnings, never raised
"""

import shutil
from pathlib import Path
from unittest.mock import patch

from checkout_controller.cleanup import cleanup
from checkout_controller.status import Severity, StatusLog


class TestCleanup:
    """Tests for cleanup()."""

    def test_removes_every_location(self, tmp_path):
        """Test that folders and files are all removed."""
        folder = tmp_path / "repo"
        (folder / "src").mkdir(parents=True)
        (folder / "src" / "main.py").write_text("print('hi')\n")
        loose = tmp_path / "archive.zip"
        loose.write_bytes(b"PK")

        removed = cleanup([folder, loose])

        assert removed == [folder, loose]
        assert not folder.exists()
        assert not loose.exists()

    def test_cleanup_twice_is_harmless(self, tmp_path):
        """Test that a second cleanup of the same locations does nothing."""
        folder = tmp_path / "repo"
        folder.mkdir()
        log = StatusLog()

        assert cleanup([folder], log) == [folder]
        assert cleanup([folder], log) == []
        assert len(log) == 0

    def test_missing_location_is_skipped(self, tmp_path):
        """Test that a location that never existed is not an error."""
        assert cleanup([tmp_path / "never-there"]) == []

    def test_failure_is_recorded_and_other_locations_continue(self, tmp_path):
        """Test that one failing location does not stop the rest."""
        stuck = tmp_path / "stuck"
        stuck.mkdir()
        other = tmp_path / "other"
        other.mkdir()
        log = StatusLog()
        real_rmtree = shutil.rmtree

        def fake_rmtree(path, *args, **kwargs):
            if Path(path) == stuck:
                raise PermissionError(13, "Permission denied", str(path))
            return real_rmtree(path, *args, **kwargs)

        with patch("checkout_controller.cleanup.shutil.rmtree", side_effect=fake_rmtree):
            removed = cleanup([stuck, other], log)

        assert removed == [other]
        assert stuck.exists()
        assert len(log) == 1
        record = log.records[0]
        assert record.severity == Severity.WARNING
        assert record.source == "cleanup"
        assert isinstance(record.cause, PermissionError)
