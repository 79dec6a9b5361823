"""
Supported runtime registry.

A runtime ties a language ecosystem to a concrete version.  Delegates
only ever hold names found in this table; anything else is rejected as
a validation error before a delegate is constructed.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

Language = Literal["nodejs", "dart"]
RuntimeStatus = Literal["beta", "GA", "deprecated", "decommissioned"]


class Runtime(BaseModel):
    """One supported runtime."""

    name: str                   # e.g. "nodejs20"
    language: Language
    version: int                # major version of the language toolchain
    status: RuntimeStatus = "GA"
    friendly_name: str = ""


RUNTIMES: dict[str, Runtime] = {
    r.name: r
    for r in (
        Runtime(name="nodejs16", language="nodejs", version=16,
                status="decommissioned", friendly_name="Node.js 16"),
        Runtime(name="nodejs18", language="nodejs", version=18,
                status="deprecated", friendly_name="Node.js 18"),
        Runtime(name="nodejs20", language="nodejs", version=20,
                friendly_name="Node.js 20"),
        Runtime(name="nodejs22", language="nodejs", version=22,
                friendly_name="Node.js 22"),
        Runtime(name="dart3", language="dart", version=3,
                status="beta", friendly_name="Dart 3"),
    )
}


def is_runtime(name: str | None) -> bool:
    """Whether ``name`` is a known, still-deployable runtime."""
    runtime = RUNTIMES.get(name or "")
    return runtime is not None and runtime.status != "decommissioned"


def get_runtime(name: str) -> Runtime | None:
    return RUNTIMES.get(name)


def runtime_is_language(name: str, language: str) -> bool:
    runtime = RUNTIMES.get(name)
    return runtime is not None and runtime.language == language


def runtimes_for(language: str) -> list[Runtime]:
    """Deployable runtimes of a language, oldest first."""
    return sorted(
        (r for r in RUNTIMES.values()
         if r.language == language and r.status != "decommissioned"),
        key=lambda r: r.version,
    )


def latest(language: str) -> str:
    """Name of the newest deployable runtime for ``language``.

    Raises:
        KeyError: if the registry has no runtime for that language.
    """
    candidates = runtimes_for(language)
    if not candidates:
        raise KeyError(f"No runtimes registered for language '{language}'")
    return candidates[-1].name
