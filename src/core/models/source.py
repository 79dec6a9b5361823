"""
Source descriptor — what the orchestrator knows about a codebase.

This is the immutable input handed to every delegate factory.  It
names the owning project, where the project lives on disk, which
directory holds the function source, and the runtime the user declared
(if any).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict

# Values exposed to user code through CLOUD_RUNTIME_CONFIG.
RuntimeConfigValues = dict[str, Any]

# Plain environment bindings for user code.
EnvironmentVariables = dict[str, str]


class SourceDescriptor(BaseModel):
    """A function source directory awaiting a delegate."""

    model_config = ConfigDict(frozen=True)

    project_id: str
    project_dir: Path
    source_dir: Path
    runtime: str | None = None   # declared runtime, None = let the delegate decide

    @property
    def relative_source(self) -> str:
        """Source directory relative to the project, for messages."""
        try:
            return str(self.source_dir.relative_to(self.project_dir))
        except ValueError:
            return str(self.source_dir)
