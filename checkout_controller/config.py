"""
Configuration for the checkout controller.

Settings come from an optional YAML file, then environment overrides:

    CHECKOUT_ROOT            - where remote sources are checked out
    CHECKOUT_WORKSPACE_FILE  - workspace registry JSON file
    CHECKOUT_BUNDLE_DIR      - where diagnostic bundles are written
    CHECKOUT_TIMEOUT         - per-location checkout timeout in seconds
    CHECKOUT_LOG_FILE        - optional log file, collected into bundles
"""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger("checkout_config")

# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------
DEFAULT_BASE_DIR = Path(os.getenv("CHECKOUT_BASE_DIR", "/tmp/checkout_controller"))
DEFAULT_MANIFEST_NAME = "project.yaml"
DEFAULT_ALTERNATE_MARKER = ".project"
DEFAULT_NAME_TEMPLATE = "[artifact]"

ENV_OVERRIDES = {
    "CHECKOUT_ROOT": "checkout_root",
    "CHECKOUT_WORKSPACE_FILE": "workspace_file",
    "CHECKOUT_BUNDLE_DIR": "bundle_dir",
    "CHECKOUT_TIMEOUT": "checkout_timeout",
    "CHECKOUT_LOG_FILE": "log_file",
}

_PLACEHOLDER = re.compile(r"\[(group|artifact|version|name)\]")


# -----------------------------------------------------------------------------
# Controller Settings
# -----------------------------------------------------------------------------
class ControllerSettings(BaseModel):
    """Process-wide settings."""
    checkout_root: Path = Field(default=DEFAULT_BASE_DIR / "checkouts")
    workspace_file: Path = Field(default=DEFAULT_BASE_DIR / "workspace" / "projects.json")
    bundle_dir: Path = Field(default=DEFAULT_BASE_DIR / "bundles")
    manifest_name: str = DEFAULT_MANIFEST_NAME
    alternate_marker: str = DEFAULT_ALTERNATE_MARKER
    name_template: str = DEFAULT_NAME_TEMPLATE
    include_modules: bool = False
    checkout_timeout: int = Field(default=300, gt=0)
    git_depth: Optional[int] = Field(default=1, ge=1)
    max_concurrent_jobs: int = Field(default=2, ge=1)
    log_file: Optional[Path] = None

    def import_configuration(self) -> "ProjectImportConfiguration":
        """Build the per-run import configuration from these settings."""
        return ProjectImportConfiguration(
            name_template=self.name_template,
            include_modules=self.include_modules,
            manifest_name=self.manifest_name,
        )


def load_settings(path: Optional[Path] = None) -> ControllerSettings:
    """
    Load settings from a YAML file and apply environment overrides.

    A missing file is not an error; defaults are used instead.
    """
    data: Dict[str, Any] = {}

    if path is not None:
        path = Path(path)
        if path.exists():
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            logger.info(f"Loaded settings from {path}")
        else:
            logger.warning(f"Settings file not found: {path}, using defaults")

    for env_name, key in ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            data[key] = value

    return ControllerSettings(**data)


# -----------------------------------------------------------------------------
# Import Configuration
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ProjectImportConfiguration:
    """
    How discovered projects become workspace projects.

    name_template placeholders: [group], [artifact], [version], [name].
    include_modules keeps nested modules inside their parent project instead
    of importing each module as its own project.
    """
    name_template: str = DEFAULT_NAME_TEMPLATE
    include_modules: bool = False
    needs_rename: bool = False
    manifest_name: str = DEFAULT_MANIFEST_NAME

    def project_name(self, model) -> str:
        """Derive the workspace project name for a project model."""
        values = {
            "group": str(model.group or ""),
            "artifact": str(model.artifact or ""),
            "version": str(model.version or ""),
            "name": str(model.name or model.artifact or ""),
        }
        name = _PLACEHOLDER.sub(lambda m: values[m.group(1)], self.name_template).strip()
        return name or model.artifact

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name_template": self.name_template,
            "include_modules": self.include_modules,
            "needs_rename": self.needs_rename,
            "manifest_name": self.manifest_name,
        }
