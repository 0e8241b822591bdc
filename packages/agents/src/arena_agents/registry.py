"""
Executor registry builder.

Binds every role to the providers that are actually configured. When a
role's primary provider is missing its fallback is promoted; a role with
neither is skipped.
"""

from collections.abc import Iterable, Mapping

from arena_core import (
    CompletionProvider,
    ConfigurationError,
    EventDispatcher,
    ExecutorSettings,
    ProviderBinding,
    get_logger,
)

from .executor import ResilientExecutor
from .roles import DEFAULT_ROLES, ExecutorRole, ProviderRef

logger = get_logger(__name__)


def _bind(
    ref: ProviderRef | None,
    providers: Mapping[str, CompletionProvider],
) -> ProviderBinding | None:
    if ref is None or ref.provider not in providers:
        return None
    return ProviderBinding(provider=providers[ref.provider], model=ref.model)


def build_executors(
    providers: Mapping[str, CompletionProvider],
    settings: ExecutorSettings | None = None,
    events: EventDispatcher | None = None,
    roles: Iterable[ExecutorRole] = DEFAULT_ROLES,
) -> dict[str, ResilientExecutor]:
    """
    Create one ``ResilientExecutor`` per role.

    Raises:
        ConfigurationError: If no provider is configured at all
    """
    if not providers:
        raise ConfigurationError("No completion provider is configured")

    events = events or EventDispatcher()
    executors: dict[str, ResilientExecutor] = {}
    for role in roles:
        primary = _bind(role.primary, providers)
        fallback = _bind(role.fallback, providers)
        if primary is None:
            primary, fallback = fallback, None
        if primary is None:
            logger.warning(
                "Skipping executor without configured provider",
                executor=role.id,
                primary=role.primary.provider,
            )
            continue
        executors[role.id] = ResilientExecutor(
            role=role,
            primary=primary,
            fallback=fallback,
            settings=settings,
            events=events,
        )
    return executors
