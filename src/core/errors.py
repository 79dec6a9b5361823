"""
Error taxonomy for runtime delegates and trigger discovery.

"This source belongs to another ecosystem" is not an error: detectors
return None for it.  Everything else surfaces as one of the classes
below, each carrying a human remediation and an exit code hint for the
CLI.
"""

from __future__ import annotations


class RuntimeDelegateError(Exception):
    """Base class for errors raised by delegates and discovery."""

    exit_code: int = 2

    def __init__(
        self,
        message: str,
        *,
        remediation: str = "",
        exit_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.remediation = remediation
        if exit_code is not None:
            self.exit_code = exit_code

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "type": self.__class__.__name__,
            "remediation": self.remediation,
            "exit_code": self.exit_code,
        }


class SourceValidationError(RuntimeDelegateError):
    """Structural problem in the user's source (bad manifest, bad runtime)."""


class InternalConsistencyError(RuntimeDelegateError):
    """The tool itself is inconsistent, e.g. a detector/registry mismatch."""

    exit_code = 1


class DiscoveryError(RuntimeDelegateError):
    """No discovery strategy produced a usable build description."""

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        port: int | None = None,
        remediation: str = "",
    ):
        super().__init__(message, remediation=remediation)
        self.path = path
        self.port = port

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.path is not None:
            data["path"] = self.path
        if self.port is not None:
            data["port"] = self.port
        return data


class ProcessError(RuntimeDelegateError):
    """A supervised subprocess failed to start or crashed."""

    def __init__(
        self,
        message: str,
        *,
        returncode: int | None = None,
        stderr_tail: list[str] | None = None,
        remediation: str = "",
    ):
        self.returncode = returncode
        self.stderr_tail = list(stderr_tail or [])
        if self.stderr_tail:
            message = message + "\n" + "\n".join(f"  | {line}" for line in self.stderr_tail)
        super().__init__(message, remediation=remediation)
