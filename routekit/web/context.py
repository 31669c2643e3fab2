import logging
from typing import Optional

from routekit.constants import LOGGER_HANDLERS

logger = logging.getLogger(LOGGER_HANDLERS)


class RouteLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the route's name."""

    def process(self, msg, kwargs):
        return f"[{self.extra['route']}] {msg}", kwargs


class RenderContext:
    """
    Per-request context handed to a handler as its first argument.

    Attributes:
        logger (RouteLoggerAdapter): Logger prefixed with the route name or path.
        route (RouteDescriptor | None): The explicit route, if one claimed the handler.
    """

    def __init__(self, name: str, route=None, template: Optional[str] = None):
        self.logger = RouteLoggerAdapter(logger, {"route": name})
        self.route = route
        self._template = template
        self._template_override = None

    def set_template(self, path: str) -> None:
        """Render this request with `path` instead of the configured template."""
        self._template_override = path

    @property
    def template(self) -> Optional[str]:
        return self._template_override or self._template
