"""Runtime delegates — nodejs, dart."""

from src.adapters.runtimes.base import RuntimeDelegate
from src.adapters.runtimes.dart import DartDelegate
from src.adapters.runtimes.node import NodeDelegate
from src.adapters.runtimes.registry import (
    DelegateRegistry,
    default_registry,
    detect_delegate,
    get_runtime_delegate,
)

__all__ = [
    "DartDelegate",
    "DelegateRegistry",
    "NodeDelegate",
    "RuntimeDelegate",
    "default_registry",
    "detect_delegate",
    "get_runtime_delegate",
]
