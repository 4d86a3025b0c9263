"""version-trail HTTP service entry point.

Initializes the FastAPI application with:
- A Tracker whose version log is stored through SQLAlchemy
- A host hook that registers tracked models and attaches a repository
- The read-only version history router

The hook is passed to create_app() or named by VERSION_TRAIL_CONFIGURE_HOOK,
e.g. ``VERSION_TRAIL_CONFIGURE_HOOK=shop.tracking:configure``.
"""

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from pkgutil import resolve_name

from fastapi import FastAPI

from version_trail.adapters.sql_version_log import SqlVersionLog
from version_trail.api.routes import router
from version_trail.errors import ValidationError
from version_trail.observability import configure_logging, get_logger
from version_trail.settings import Settings
from version_trail.tracker import Tracker

logger = get_logger(__name__)

TrackerHook = Callable[[Tracker], None]


def load_hook(path: str) -> TrackerHook:
    """Import the configure hook named by a ``package.module:function`` path.

    Raises:
        ValidationError: If the path cannot be imported or is not callable.
    """
    try:
        hook = resolve_name(path)
    except (ImportError, AttributeError, ValueError) as exc:
        raise ValidationError(f"Cannot import configure hook {path!r}: {exc}") from exc
    if not callable(hook):
        raise ValidationError(f"Configure hook {path!r} is not callable")
    return hook


def create_app(
    tracker: Tracker | None = None,
    settings: Settings | None = None,
    configure: TrackerHook | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        tracker: A configured Tracker. When None, one is created on startup
            with a SqlVersionLog at settings.database_url.
        settings: Settings. Defaults to Settings() from the environment.
        configure: Called with the Tracker on startup, before requests are
            served. Defaults to the hook named by settings.configure_hook.

    Returns:
        The application with the version router mounted under api_prefix.

    Raises:
        ValidationError: If settings.configure_hook cannot be imported.
    """
    settings = settings or (tracker.settings if tracker is not None else Settings())
    if configure is None and settings.configure_hook:
        configure = load_hook(settings.configure_hook)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        active = tracker
        if active is None:
            logger.info("Initializing version log", service=settings.service_name)
            log = SqlVersionLog(settings.database_url, echo=settings.database_echo)
            log.create_schema()
            active = Tracker(settings, log=log)
        if configure is not None:
            configure(active)
        if not active.registry.item_types():
            logger.warning("No item types registered, item routes will answer 404")
        app.state.tracker = active
        app.state.settings = settings
        logger.info(
            "version-trail startup complete",
            serializer=settings.serializer,
            item_types=active.registry.item_types(),
        )

        yield

        logger.info("version-trail shutdown complete")

    app = FastAPI(title=settings.service_name, version="0.1.0", lifespan=lifespan)
    app.include_router(router, prefix=settings.api_prefix)
    if tracker is not None:
        app.state.tracker = tracker
    return app


def run() -> FastAPI:
    """Configure logging and return the application built from the environment."""
    configure_logging()
    return create_app()
