"""Adapters — bindings to ecosystem tooling and child processes.

Public re-exports for convenient access.
"""

from src.adapters.runtimes import (
    DelegateRegistry,
    RuntimeDelegate,
    default_registry,
    get_runtime_delegate,
)

__all__ = [
    "DelegateRegistry",
    "RuntimeDelegate",
    "default_registry",
    "get_runtime_delegate",
]
