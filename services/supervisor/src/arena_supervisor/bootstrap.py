"""
Supervisor wiring.

Builds providers, executors, router, pipeline and supervisor from
``Settings`` with one shared event dispatcher.
"""

from collections.abc import Mapping

from arena_agents import build_executors
from arena_core import CompletionProvider, EventDispatcher, Settings, get_logger, get_settings
from arena_core.providers import create_providers

from .cache import ResultCache
from .collaboration import CollaborationPipeline
from .router import TaskRouter
from .store import TaskStore
from .supervisor import TaskSupervisor

logger = get_logger(__name__)


def create_supervisor(
    settings: Settings | None = None,
    providers: Mapping[str, CompletionProvider] | None = None,
    store: TaskStore | None = None,
) -> TaskSupervisor:
    """
    Create a fully wired, not yet started supervisor.

    Args:
        settings: Application settings (defaults to the cached settings)
        providers: Completion providers by name (defaults to those with an API key)
        store: Task store (defaults to the in-memory store)

    Raises:
        ConfigurationError: If no completion provider is available
    """
    settings = settings or get_settings()
    if providers is None:
        providers = create_providers(settings.api)

    events = EventDispatcher()
    executors = build_executors(providers, settings=settings.executor, events=events)
    logger.info(
        "Supervisor wired",
        providers=sorted(providers),
        executors=list(executors),
    )
    return TaskSupervisor(
        executors=executors,
        router=TaskRouter(executors, settings=settings.router),
        pipeline=CollaborationPipeline(executors, settings=settings.pipeline, events=events),
        store=store,
        cache=ResultCache(
            ttl=settings.supervisor.cache_ttl,
            enabled=settings.supervisor.cache_enabled,
        ),
        settings=settings.supervisor,
        events=events,
    )
