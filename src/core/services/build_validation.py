"""
Build checks — sanity checks run before and after discovery.

Discovery trusts the SDK for the shape of each endpoint; these checks
cover what the deploy backends reject outright: a source directory that
does not exist and function ids the platform will not accept.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Iterable

from src.core.errors import SourceValidationError
from src.core.models.build import Endpoint

# gcfv1 allows mixed case and underscores; gcfv2 maps ids onto service
# names, which are lowercase DNS labels.
_GCFV1_ID = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]{0,62}$")
_GCFV2_ID = re.compile(r"^[a-z][a-z0-9-]{0,62}$")


def functions_directory_exists(project_dir: Path, source: str) -> Path:
    """Resolve ``source`` under the project and require it to be a directory.

    Returns:
        The resolved source directory.

    Raises:
        SourceValidationError: if the directory is missing.
    """
    source_dir = (Path(project_dir) / source).resolve()
    if not source_dir.is_dir():
        raise SourceValidationError(
            f'could not deploy functions because the "{source}" directory was not found.',
            remediation=(
                "Check the functions source path in functions.yml, or create the "
                "directory."
            ),
        )
    return source_dir


def function_ids_are_valid(endpoints: Iterable[Endpoint]) -> None:
    """Reject ids the target platform cannot deploy.

    Raises:
        SourceValidationError: listing every invalid id.
    """
    invalid_v1: list[str] = []
    invalid_v2: list[str] = []
    for endpoint in endpoints:
        if endpoint.platform == "gcfv1":
            if not _GCFV1_ID.match(endpoint.id):
                invalid_v1.append(endpoint.id)
        elif not _GCFV2_ID.match(endpoint.id):
            invalid_v2.append(endpoint.id)

    problems: list[str] = []
    if invalid_v1:
        problems.append(
            f"{', '.join(sorted(invalid_v1))}: function names must start with a letter "
            "and contain only letters, numbers, underscores and hyphens, "
            "at most 63 characters"
        )
    if invalid_v2:
        problems.append(
            f"{', '.join(sorted(invalid_v2))}: v2 function names must start with a "
            "lowercase letter and contain only lowercase letters, numbers and hyphens, "
            "at most 63 characters"
        )
    if problems:
        raise SourceValidationError(
            "Invalid function name(s): " + "; ".join(problems),
            remediation="Rename the exported functions.",
        )
