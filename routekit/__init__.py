from routekit.library.discovery import HandlerRecord, HandlerRegistry, discover_handlers
from routekit.library.exceptions import ConfigurationError, HandlerLoadError, RouteKitError, TemplateError
from routekit.library.loader import DescriptorHandler, FunctionHandler, HandlerLoader
from routekit.library.options import RouteDescriptor, ServerOptions, load_route_config
from routekit.library.resolver import ResolvedRoute, resolve_routes
from routekit.web.app import RouteServer, build, create_server
from routekit.web.context import RenderContext
from routekit.web.render import TemplateRenderer

__version__ = "0.1.0"
