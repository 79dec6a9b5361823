"""
package.json helpers for the Node.js delegate.

Reads the manifest, picks the runtime, locates the functions SDK and
validates the package.  All functions here are read-only.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from src.core.errors import InternalConsistencyError, SourceValidationError
from src.core.models import runtime as supported
from src.core.services import versioning

logger = logging.getLogger(__name__)

PACKAGE_JSON = "package.json"
SDK_PACKAGE = "firebase-functions"

# Below this the SDK cannot be deployed at all.
MIN_SUPPORTED_SDK_VERSION = "2.0.0"

_ENGINES_RE = re.compile(r"^\s*[\^~>=v]*\s*(\d+)")


def read_package_json(source_dir: Path) -> dict[str, Any]:
    """Load package.json as a mapping.

    Raises:
        SourceValidationError: if it is missing, unreadable or not an object.
    """
    path = Path(source_dir) / PACKAGE_JSON
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise SourceValidationError(
            f"Failed to read {path}: {e}",
            remediation="Make sure the functions source directory contains a package.json.",
        ) from e
    except json.JSONDecodeError as e:
        raise SourceValidationError(
            f"{path} is not valid JSON: {e}",
            remediation="Fix the syntax error in package.json.",
        ) from e
    if not isinstance(data, dict):
        raise SourceValidationError(f"{path} must contain a JSON object")
    return data


def runtime_from_engines(package: dict[str, Any]) -> str | None:
    """Map ``engines.node`` ("20", ">=18", "^22.1") onto a runtime name."""
    engines = package.get("engines")
    if not isinstance(engines, dict) or not engines.get("node"):
        return None
    match = _ENGINES_RE.match(str(engines["node"]))
    if not match:
        return None
    return f"nodejs{match.group(1)}"


def get_runtime_choice(source_dir: Path, declared: str | None) -> str:
    """Choose the Node.js runtime: declared, then engines.node, then latest.

    Raises:
        SourceValidationError: if the chosen runtime is not supported.
        InternalConsistencyError: if a supported runtime of another
            language was chosen.
    """
    origin = "the functions config"
    runtime = declared
    if not runtime:
        runtime = runtime_from_engines(read_package_json(source_dir))
        origin = '"engines.node" in package.json'
    if not runtime:
        runtime = supported.latest("nodejs")
        logger.debug("No Node.js runtime declared; using %s", runtime)
        return runtime

    if not supported.is_runtime(runtime):
        choices = ", ".join(r.name for r in supported.runtimes_for("nodejs"))
        raise SourceValidationError(
            f"Runtime '{runtime}' from {origin} is not supported.",
            remediation=f"Use one of: {choices}.",
        )
    if not supported.runtime_is_language(runtime, "nodejs"):
        raise InternalConsistencyError(
            f"Unexpected runtime {runtime} for a source with a package.json",
        )
    return runtime


def find_sdk_package_dir(source_dir: Path) -> Path | None:
    """Locate node_modules/firebase-functions from ``source_dir`` upwards."""
    current = Path(source_dir).resolve()
    for directory in (current, *current.parents):
        candidate = directory / "node_modules" / SDK_PACKAGE
        if (candidate / PACKAGE_JSON).is_file():
            return candidate
    return None


def find_sdk_binary(source_dir: Path) -> Path | None:
    """The firebase-functions executable installed next to the SDK."""
    sdk_dir = find_sdk_package_dir(source_dir)
    if sdk_dir is None:
        return None
    binary = sdk_dir.parent / ".bin" / SDK_PACKAGE
    return binary if binary.exists() else None


def get_sdk_version(source_dir: Path) -> str:
    """Version of the functions SDK, or "" if it cannot be determined.

    Prefers the installed package; otherwise the string declared under
    ``dependencies`` is returned verbatim (a range there will not parse
    as a version).
    """
    sdk_dir = find_sdk_package_dir(source_dir)
    if sdk_dir is not None:
        try:
            data = json.loads((sdk_dir / PACKAGE_JSON).read_text(encoding="utf-8"))
            version = data.get("version") if isinstance(data, dict) else None
            if isinstance(version, str):
                return version
        except (OSError, json.JSONDecodeError) as e:
            logger.debug("Could not read installed %s version: %s", SDK_PACKAGE, e)

    try:
        package = read_package_json(source_dir)
    except SourceValidationError:
        return ""
    declared = (package.get("dependencies") or {}).get(SDK_PACKAGE)
    return declared if isinstance(declared, str) else ""


def package_json_is_valid(source_dir: Path, relative_dir: str) -> None:
    """Structural checks on package.json and its entry point.

    Raises:
        SourceValidationError: on the first problem found.
    """
    package = read_package_json(source_dir)

    main = package.get("main", "index.js")
    if not isinstance(main, str) or not main:
        raise SourceValidationError(f'"main" in {relative_dir}/package.json must be a file path')
    entry = Path(source_dir) / main
    if not (entry.is_file() or entry.with_suffix(".js").is_file() or (entry / "index.js").is_file()):
        raise SourceValidationError(
            f"{relative_dir}/package.json points to main file {main}, which does not exist.",
            remediation=(
                'Fix the "main" field, or run your build step first if the code is '
                "compiled (e.g. TypeScript)."
            ),
        )

    dependencies = package.get("dependencies") or {}
    if not isinstance(dependencies, dict) or SDK_PACKAGE not in dependencies:
        raise SourceValidationError(
            f"{relative_dir}/package.json does not declare a dependency on {SDK_PACKAGE}.",
            remediation=f"Run: npm install --save {SDK_PACKAGE}",
        )


def check_sdk_version(sdk_version: str) -> None:
    """Reject SDKs too old to deploy; warn when the SDK is not installed.

    Versions that do not parse are let through: discovery decides what
    to do with them.

    Raises:
        SourceValidationError: if the SDK is below MIN_SUPPORTED_SDK_VERSION.
    """
    if not sdk_version:
        logger.warning(
            "functions: could not find an installed %s. Run npm install in your "
            "functions directory.", SDK_PACKAGE,
        )
        return
    if versioning.is_valid(sdk_version) and versioning.lt(sdk_version, MIN_SUPPORTED_SDK_VERSION):
        raise SourceValidationError(
            f"{SDK_PACKAGE} {sdk_version} is no longer supported.",
            remediation=f"Run: npm install --save {SDK_PACKAGE}@latest",
        )
