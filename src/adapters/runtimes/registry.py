"""
Delegate registry — runtime detection across ecosystems.

Each ecosystem contributes a factory that either claims a source
directory (returning a delegate) or declines it (returning None).  The
registry asks every factory in registration order and the first claim
wins.  A factory raises only when the source is clearly its ecosystem
but malformed.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from src.adapters.runtimes import dart, node
from src.adapters.runtimes.base import RuntimeDelegate
from src.core.config.settings import RuntimeSettings
from src.core.errors import SourceValidationError
from src.core.models.source import SourceDescriptor

logger = logging.getLogger(__name__)

DelegateFactory = Callable[
    [SourceDescriptor, "RuntimeSettings | None"],
    Awaitable["RuntimeDelegate | None"],
]


class DelegateRegistry:
    """Ordered collection of ecosystem factories."""

    def __init__(self, settings: RuntimeSettings | None = None):
        self._factories: dict[str, DelegateFactory] = {}
        self._settings = settings

    def register(self, language: str, factory: DelegateFactory) -> None:
        if language in self._factories:
            logger.warning("Overwriting existing runtime factory: %s", language)
        self._factories[language] = factory
        logger.debug("Registered runtime factory: %s", language)

    def unregister(self, language: str) -> None:
        self._factories.pop(language, None)

    def list_languages(self) -> list[str]:
        return list(self._factories.keys())

    async def detect(self, context: SourceDescriptor) -> RuntimeDelegate | None:
        """First delegate that claims ``context``, or None."""
        for language, factory in self._factories.items():
            delegate = await factory(context, self._settings)
            if delegate is not None:
                logger.debug(
                    "Detected %s source at %s (runtime %s)",
                    language, context.source_dir, delegate.runtime,
                )
                return delegate
        return None

    async def get_delegate(self, context: SourceDescriptor) -> RuntimeDelegate:
        """Like detect(), but a source nobody claims is a user error.

        Raises:
            SourceValidationError: if no ecosystem recognises the source.
        """
        delegate = await self.detect(context)
        if delegate is None:
            raise SourceValidationError(
                f"Could not detect the language of the functions source at {context.source_dir}.",
                remediation=(
                    "Add a package.json (Node.js) or a pubspec.yaml (Dart) to the "
                    "functions source directory."
                ),
            )
        return delegate


def default_registry(settings: RuntimeSettings | None = None) -> DelegateRegistry:
    """Registry with every built-in ecosystem."""
    registry = DelegateRegistry(settings)
    registry.register("nodejs", node.try_create_delegate)
    registry.register("dart", dart.try_create_delegate)
    return registry


async def detect_delegate(
    context: SourceDescriptor,
    settings: RuntimeSettings | None = None,
) -> RuntimeDelegate | None:
    return await default_registry(settings).detect(context)


async def get_runtime_delegate(
    context: SourceDescriptor,
    settings: RuntimeSettings | None = None,
) -> RuntimeDelegate:
    return await default_registry(settings).get_delegate(context)
