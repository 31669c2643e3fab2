"""
Turn discovered handler files into routes.

Explicit routes from the route list are resolved first; every handler file
they claim is then skipped by the convention pass, which binds the remaining
modules using the attributes they declare themselves.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from routekit.library.discovery import HandlerRecord, HandlerRegistry
from routekit.library.exceptions import HandlerLoadError
from routekit.library.loader import DescriptorHandler, HandlerLoader
from routekit.library.options import RouteDescriptor

logger = logging.getLogger(__name__)

# Express-style `:param` segments
_COLON_PARAM_RE = re.compile(r"(?<=/):(\w+)")


def to_route_path(path: str) -> str:
    """Rewrite ``/users/:id`` as ``/users/{id}``; other paths pass through."""
    if not path.startswith("/"):
        path = "/" + path
    return _COLON_PARAM_RE.sub(r"{\1}", path)


@dataclass
class ResolvedRoute:
    """A route ready to be registered on the app."""
    method: str
    path: str
    record: HandlerRecord
    template: Optional[str] = None
    descriptor: Optional[RouteDescriptor] = None

    @property
    def name(self) -> str:
        if self.descriptor is not None:
            return self.descriptor.name
        return self.path

    @property
    def file_path(self) -> Path:
        return self.record.file_path


def _resolve_explicit(
    registry: HandlerRegistry,
    loader: HandlerLoader,
    descriptors: Iterable[RouteDescriptor],
) -> List[ResolvedRoute]:
    routes = []
    for descriptor in descriptors:
        record = registry.lookup(descriptor.name)
        if record is None:
            logger.debug(f"No handler named '{descriptor.name}' for {descriptor.method.upper()} {descriptor.path}; skipping")
            continue

        try:
            loader.load(record)
        except HandlerLoadError:
            logger.exception(f"Skipping route {descriptor.method.upper()} {descriptor.path}")
            continue

        record.is_handled = True
        routes.append(ResolvedRoute(
            method=descriptor.method,
            path=to_route_path(descriptor.path),
            record=record,
            template=descriptor.template,
            descriptor=descriptor,
        ))
    return routes


def _resolve_conventions(registry: HandlerRegistry, loader: HandlerLoader) -> List[ResolvedRoute]:
    routes = []
    for record in registry.unhandled():
        try:
            kind = loader.load(record)
        except HandlerLoadError:
            logger.exception(f"Skipping handler '{record.full_name}'")
            continue

        if not isinstance(kind, DescriptorHandler):
            # not every module in the directory is a route
            logger.debug(f"'{record.full_name}' declares no route; unloading")
            loader.unload(record)
            continue

        record.is_handled = True
        routes.append(ResolvedRoute(
            method=kind.method,
            path=to_route_path(kind.path),
            record=record,
            template=kind.template,
        ))
    return routes


def resolve_routes(
    registry: HandlerRegistry,
    loader: HandlerLoader,
    descriptors: Optional[Iterable[RouteDescriptor]] = None,
) -> List[ResolvedRoute]:
    """
    Resolve every route the handler directory can serve.

    Args:
        registry (HandlerRegistry): Discovery output; records are marked
            handled as routes claim them.
        loader (HandlerLoader): Imports and classifies the modules.
        descriptors (Iterable[RouteDescriptor]): Optional explicit route list,
            in registration order.

    Returns:
        list[ResolvedRoute]: Explicit routes first, then convention routes.
    """
    routes = _resolve_explicit(registry, loader, descriptors or [])
    explicit_count = len(routes)
    routes.extend(_resolve_conventions(registry, loader))

    logger.info(
        f"Resolved {len(routes)} routes: {explicit_count} explicit | "
        f"{len(routes) - explicit_count} by convention"
    )
    orphans = [r.full_name for r in registry.records.values() if not r.is_handled]
    if orphans:
        logger.debug(f"Handler modules without a route: {', '.join(sorted(orphans))}")
    return routes
