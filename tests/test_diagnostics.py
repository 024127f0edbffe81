"""
Tests for diagnostic bundles.

Tests covering:
- Per-unit failure isolation and status entries in failure order
- Progress accounting
- Built-in data units and gatherers
- The gatherer registry
- Archive failures
"""

import json
import zipfile

import pytest
import yaml

from checkout_controller.config import ControllerSettings
from checkout_controller.diagnostics import Data, DiagnosticBundler, DiagnosticContext
from checkout_controller.errors import BundleError, GatherError
from checkout_controller.gatherers import (
    DataGatherer,
    get_gatherers,
    register_gatherer,
    unregister_gatherer,
)
from checkout_controller.models import CheckoutRequest
from checkout_controller.progress import ProgressMonitor
from checkout_controller.sources import FileSource, TextSource
from checkout_controller.status import Severity, StatusRecord
from checkout_controller.workflow import WorkflowRun


class Recording(DataGatherer):
    """Writes one entry, then optionally fails."""

    def __init__(self, name, fail=None):
        self.name = name
        self.fail = fail

    def gather(self, context):
        context.consume(self.name, TextSource("out.txt", f"from {self.name}\n"))
        if self.fail is not None:
            raise self.fail


def names(bundle_file):
    with zipfile.ZipFile(bundle_file) as archive:
        return sorted(archive.namelist())


def read(bundle_file, entry):
    with zipfile.ZipFile(bundle_file) as archive:
        return archive.read(entry).decode("utf-8")


@pytest.fixture
def settings(tmp_path):
    return ControllerSettings(
        checkout_root=tmp_path / "checkouts",
        workspace_file=tmp_path / "workspace" / "projects.json",
        bundle_dir=tmp_path / "bundles",
    )


class TestFailureIsolation:
    """Tests for collect-and-continue gathering."""

    def test_five_gatherers_two_failing(self, tmp_path):
        """#2 and #4 fail: three artifacts, two status entries, five units of progress."""
        gatherers = [
            Recording("g1"),
            Recording("g2", fail=RuntimeError("disk on fire")),
            Recording("g3"),
            Recording("g4", fail=GatherError(StatusRecord.warning("g4", "g4 has nothing to say"))),
            Recording("g5"),
        ]
        monitor = ProgressMonitor()
        bundle = tmp_path / "report.zip"

        report = DiagnosticBundler().gather(bundle, data_set=[], monitor=monitor, gatherers=gatherers)

        assert names(bundle) == [
            "g1/out.txt", "g3/out.txt", "g5/out.txt", "pr/status-0.txt", "pr/status-1.txt",
        ]
        assert monitor.total == 5
        assert monitor.completed == 5
        assert monitor.finished

        first = read(bundle, "pr/status-0.txt")
        assert "Severity: ERROR" in first
        assert "Failure while gathering problem report data: disk on fire" in first
        assert "RuntimeError" in first
        second = read(bundle, "pr/status-1.txt")
        assert "Severity: WARNING" in second
        assert "g4 has nothing to say" in second
        assert len(report.statuses) == 2

    @pytest.mark.parametrize("failing", [set(), {0}, {1, 3}, {0, 1, 2, 3}])
    def test_successes_plus_failures(self, tmp_path, settings, workspace, failing):
        """N data units and M gatherers with F failures give N+M-F artifacts and F statuses."""
        gatherers = [
            Recording(f"g{i}", fail=RuntimeError(f"boom {i}") if i in failing else None)
            for i in range(4)
        ]
        context = DiagnosticContext(settings=settings, workspace=workspace)
        bundle = tmp_path / "report.zip"

        report = DiagnosticBundler(context).gather(
            bundle, data_set=[Data.SETTINGS, Data.WORKSPACE_STATE], gatherers=gatherers,
        )

        entries = names(bundle)
        status_entries = [e for e in entries if e.startswith("pr/")]
        assert len(entries) - len(status_entries) == 2 + 4 - len(failing)
        assert len(status_entries) == len(failing)
        assert [s.message for s in report.statuses] == [
            f"Failure while gathering problem report data: boom {i}" for i in sorted(failing)
        ]

    def test_failing_entry_does_not_fail_the_unit(self, tmp_path):
        """Test that the consume helper records a status and the unit goes on."""

        class Partial(DataGatherer):
            name = "partial"

            def gather(self, context):
                context.consume("partial", FileSource(tmp_path / "missing.log"))
                context.consume("partial", TextSource("kept.txt", "kept\n"))

        bundle = tmp_path / "report.zip"

        report = DiagnosticBundler().gather(bundle, data_set=[], gatherers=[Partial()])

        assert names(bundle) == ["partial/kept.txt", "pr/status-0.txt"]
        assert report.statuses[0].severity == Severity.ERROR

    def test_bundle_error_propagates(self, tmp_path):
        """Test that an unwritable bundle path raises BundleError."""
        bundle = tmp_path / "is-a-directory.zip"
        bundle.mkdir()

        with pytest.raises(BundleError) as exc:
            DiagnosticBundler().gather(bundle, data_set=[], gatherers=[Recording("g1")])

        assert exc.value.bundle_file == bundle


class TestDataUnits:
    """Tests for the built-in data units."""

    def test_settings_and_workspace(self, tmp_path, settings, workspace):
        workspace.create("demo")
        bundle = tmp_path / "report.zip"
        context = DiagnosticContext(settings=settings, workspace=workspace)

        DiagnosticBundler(context).gather(bundle, data_set=[Data.SETTINGS, Data.WORKSPACE_STATE], gatherers=[])

        dumped = yaml.safe_load(read(bundle, "config/settings.yaml"))
        assert dumped["manifest_name"] == "project.yaml"
        assert "demo" in json.loads(read(bundle, "workspace/projects.json"))["projects"]

    def test_run_history(self, tmp_path, checkout_root):
        run = WorkflowRun(CheckoutRequest(locations=["https://host/a.git"], destination=checkout_root))
        bundle = tmp_path / "report.zip"
        context = DiagnosticContext(runs=lambda: [run])

        DiagnosticBundler(context).gather(bundle, data_set=[Data.RUN_HISTORY], gatherers=[])

        data = json.loads(read(bundle, f"runs/run-{run.run_id}.json"))
        assert data["state"] == "init"

    def test_log_file(self, tmp_path, settings):
        log_file = tmp_path / "controller.log"
        log_file.write_text("2024-01-01 - checkout_workflow - INFO - started\n")
        settings.log_file = log_file
        bundle = tmp_path / "report.zip"

        DiagnosticBundler(DiagnosticContext(settings=settings)).gather(bundle, data_set=[Data.LOG_FILE], gatherers=[])

        assert "started" in read(bundle, "logs/controller.log")

    def test_missing_inputs_become_warnings(self, tmp_path):
        bundle = tmp_path / "report.zip"

        report = DiagnosticBundler().gather(bundle, gatherers=[])

        assert [s.source for s in report.statuses] == ["workspace_state", "settings", "log_file"]
        assert all(s.severity == Severity.WARNING for s in report.statuses)
        assert names(bundle) == ["pr/status-0.txt", "pr/status-1.txt", "pr/status-2.txt"]


class TestGatherers:
    """Tests for the gatherer registry and built-in gatherers."""

    def test_builtin_gatherers_registered(self):
        assert {"system", "environment", "checkouts"} <= {g.name for g in get_gatherers()}

    def test_register_and_unregister(self):
        gatherer = Recording("custom-test-gatherer")
        register_gatherer(gatherer)
        try:
            assert gatherer in get_gatherers()
            with pytest.raises(ValueError):
                register_gatherer(Recording("custom-test-gatherer"))
        finally:
            assert unregister_gatherer("custom-test-gatherer")
        assert gatherer not in get_gatherers()

    def test_builtin_gatherers_write_entries(self, tmp_path, settings):
        (settings.checkout_root / "repo").mkdir(parents=True)
        bundle = tmp_path / "report.zip"
        builtins = [g for g in get_gatherers() if g.name in ("system", "environment", "checkouts")]

        report = DiagnosticBundler(DiagnosticContext(settings=settings)).gather(
            bundle, data_set=[], gatherers=builtins,
        )

        entries = names(bundle)
        assert "system/system.json" in entries
        assert "system/python.json" in entries
        assert "system/packages.txt" in entries
        assert "repo/" in read(bundle, "checkouts/listing.txt")
        assert report.statuses == []

    def test_checkout_root_missing(self, tmp_path, settings):
        builtins = [g for g in get_gatherers() if g.name == "checkouts"]

        report = DiagnosticBundler(DiagnosticContext(settings=settings)).gather(
            tmp_path / "report.zip", data_set=[], gatherers=builtins,
        )

        assert report.statuses[0].severity == Severity.WARNING
