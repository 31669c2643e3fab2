import asyncio
import inspect
import logging
from pathlib import Path
from typing import Callable, Dict, Optional

import uvicorn
from fastapi import FastAPI
from starlette.middleware import Middleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.staticfiles import StaticFiles

from routekit.library.discovery import HandlerRecord, discover_handlers
from routekit.library.loader import HandlerLoader
from routekit.library.options import ServerOptions, normalize_options
from routekit.library.resolver import ResolvedRoute, resolve_routes
from routekit.settings import get_settings
from routekit.web.dispatch import make_endpoint, methods_for
from routekit.web.render import TemplateRenderer

logger = logging.getLogger(__name__)


class RouteServer:
    """
    Convention-routed FastAPI application.

    Construction discovers the handler modules, resolves their routes and
    registers them. Callers may then add middleware with `use`; `start`
    (called by `listen` or on the first ASGI call) mounts the static root
    after every route so it only serves what no handler claimed.
    """

    def __init__(self, options=None):
        self.logger = logger.getChild("RouteServer")
        self.options: ServerOptions = normalize_options(options)
        self.is_prod = self.options.is_prod
        self._started = False

        routes_opts = self.options.routes
        self.static_root = routes_opts.static.root

        self.app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)
        self.app.add_middleware(GZipMiddleware)
        for middleware in self.options.use:
            self.use(middleware)

        self.render = self.options.render
        if not callable(self.render):
            self.render = TemplateRenderer(self.static_root, is_prod=self.is_prod)

        self.registry = discover_handlers(
            routes_opts.include,
            include=routes_opts.pattern,
            exclude=routes_opts.exclude,
        )
        self.loader = HandlerLoader(self.registry.base, is_prod=self.is_prod)
        self.routes = resolve_routes(self.registry, self.loader, routes_opts.routes)
        for route in self.routes:
            self.add_route(route)

        self.logger.info(
            f"{len(self.routes)} routes registered from {routes_opts.include} "
            f"({'production' if self.is_prod else 'development'} mode)"
        )

    def add_route(self, route: ResolvedRoute) -> None:
        endpoint = make_endpoint(route, self.loader, self.render, self.is_prod)
        self.app.add_api_route(
            route.path,
            endpoint,
            methods=methods_for(route.method),
            include_in_schema=False,
        )
        self.logger.debug(f"{route.method.upper()} {route.path} -> {route.record.full_name}")

    def use(self, middleware, *args, **kwargs):
        """
        Register middleware on the underlying app.

        Accepts a middleware class (with its options), a Starlette
        `Middleware` spec, a ``(class, kwargs)`` tuple, or an
        ``async def (request, call_next)`` function.
        """
        if isinstance(middleware, Middleware):
            return self.app.add_middleware(middleware.cls, *middleware.args, **middleware.kwargs)
        if isinstance(middleware, tuple):
            cls, options = middleware
            return self.app.add_middleware(cls, **options)
        if inspect.isclass(middleware):
            return self.app.add_middleware(middleware, *args, **kwargs)
        if callable(middleware):
            return self.app.middleware("http")(middleware)
        raise TypeError(f"Cannot use {middleware!r} as middleware")

    def start(self) -> FastAPI:
        """Finalize middleware ordering by mounting static assets; idempotent."""
        if self._started:
            return self.app
        self._started = True
        if self.static_root.is_dir():
            self.app.mount("/", StaticFiles(directory=self.static_root), name="static")
            self.logger.debug(f"Serving static assets from {self.static_root}")
        else:
            self.logger.debug(f"No static directory at {self.static_root}")
        return self.app

    def listen(self, port: Optional[int] = None, host: Optional[str] = None, callback: Optional[Callable] = None):
        """
        Serve the app with uvicorn until it shuts down.

        Args:
            port (int): Port to bind; defaults to the configured setting.
            host (str | callable): Interface to bind; a callable here is
                taken as `callback`.
            callback (callable): Called once the server is accepting
                connections.

        Returns:
            RouteServer: self, for chaining.
        """
        if callable(host):
            callback, host = host, None
        settings = get_settings()
        config = uvicorn.Config(
            self.start(),
            host=host or settings.host,
            port=port if port is not None else settings.port,
            log_level=settings.log_level.lower(),
        )
        server = uvicorn.Server(config)
        asyncio.run(self._serve(server, callback))
        return self

    async def _serve(self, server: uvicorn.Server, callback: Optional[Callable]):
        task = asyncio.create_task(server.serve())
        if callback is not None:
            while not server.started and not task.done():
                await asyncio.sleep(0.05)
            if server.started:
                result = callback()
                if inspect.isawaitable(result):
                    await result
        await task

    def get_handlers(self) -> Dict[Path, HandlerRecord]:
        """Live discovery records keyed by file path. Experimental."""
        return self.registry.records

    async def __call__(self, scope, receive, send):
        await self.start()(scope, receive, send)


def create_server(options=None) -> RouteServer:
    """
    Build a `RouteServer` without serving it.

    Args:
        options (dict | ServerOptions): See `ServerOptions`.
    """
    return RouteServer(options)


build = create_server
