"""
Project manifest reader.

A manifest is a small YAML document:

    group: org.example
    artifact: demo-core
    version: 1.0.0
    name: Demo Core
    packaging: library
    modules:
      - demo-api
      - demo-impl
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ModelReadError
from .models import ProjectModel

logger = logging.getLogger("checkout_manifest")


def read_model(manifest: Path) -> ProjectModel:
    """Read a manifest file into a ProjectModel. Raises ModelReadError."""
    manifest = Path(manifest)
    try:
        with open(manifest, "r") as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ModelReadError(manifest, "file not found", e) from e
    except yaml.YAMLError as e:
        raise ModelReadError(manifest, "invalid YAML", e) from e
    except OSError as e:
        raise ModelReadError(manifest, str(e), e) from e

    if not isinstance(data, dict):
        raise ModelReadError(manifest, "manifest must be a mapping")

    return model_from_dict(manifest, data)


def model_from_dict(manifest: Path, data: Dict[str, Any]) -> ProjectModel:
    artifact = data.get("artifact")
    if not artifact or not isinstance(artifact, str):
        raise ModelReadError(manifest, "missing 'artifact'")

    modules = data.get("modules") or []
    if not isinstance(modules, list) or not all(isinstance(m, str) for m in modules):
        raise ModelReadError(manifest, "'modules' must be a list of folder names")

    model = ProjectModel(
        artifact=artifact.strip(),
        group=_scalar(manifest, data, "group"),
        version=_scalar(manifest, data, "version"),
        name=_scalar(manifest, data, "name"),
        packaging=_scalar(manifest, data, "packaging") or "default",
        modules=tuple(modules),
    )
    logger.debug(f"Read model {model.group}:{model.artifact} from {manifest}")
    return model


def _scalar(manifest: Path, data: Dict[str, Any], key: str) -> Optional[str]:
    """YAML reads `group: 2024` as an int; every scalar field is kept as text."""
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise ModelReadError(manifest, f"'{key}' must be a scalar")
    return str(value).strip()


def write_model(manifest: Path, model: ProjectModel) -> None:
    """Write a ProjectModel back to a manifest file."""
    manifest = Path(manifest)
    manifest.parent.mkdir(parents=True, exist_ok=True)
    data = {k: v for k, v in model.to_dict().items() if v not in (None, [], "default")}
    with open(manifest, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
