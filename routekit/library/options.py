"""
Server options and route descriptors.

Options arrive as plain dictionaries (from code or a YAML config file) and
are validated into pydantic models, then `normalize_options` fills in the
defaults that depend on each other: the include base, the static root and
the exclude list.
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from routekit.constants import (
    DIRNAME_STATIC,
    EXCLUDE_DEPENDENCIES,
    INCLUDE_GLOB,
    METHOD_ALL,
    PATH_DEFAULT_ROUTES,
)
from routekit.library.config_utils import load_yaml_file
from routekit.library.exceptions import ConfigurationError
from routekit.settings import get_settings

logger = logging.getLogger(__name__)

_GLOB_MAGIC = frozenset("*?[")


def has_magic(value: str) -> bool:
    """True if `value` contains glob wildcards."""
    return any(c in _GLOB_MAGIC for c in str(value))


class RouteDescriptor(BaseModel):
    """
    Binding of an HTTP method and path to a named handler.

    `path` may be given as a string or as ``{"value": "/path"}``; the template
    identifier lives under ``tags["template"]``.
    """
    model_config = ConfigDict(extra="allow")

    method: str = METHOD_ALL
    path: str
    name: str
    tags: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("path", mode="before")
    @classmethod
    def _unwrap_path(cls, value):
        if isinstance(value, Mapping):
            return value.get("value")
        return value

    @field_validator("method", mode="before")
    @classmethod
    def _lower_method(cls, value):
        if not value:
            return METHOD_ALL
        return str(value).lower()

    @field_validator("tags", mode="before")
    @classmethod
    def _default_tags(cls, value):
        return value or {}

    @property
    def template(self) -> Optional[str]:
        return self.tags.get("template")


class StaticOptions(BaseModel):
    root: Optional[Path] = None


class RoutesOptions(BaseModel):
    conf: Optional[Path] = None
    routes: Optional[List[RouteDescriptor]] = None
    include: Optional[Path] = None
    pattern: str = INCLUDE_GLOB
    exclude: Optional[List[str]] = None
    static: StaticOptions = Field(default_factory=StaticOptions)

    @field_validator("static", mode="before")
    @classmethod
    def _static_root(cls, value):
        if value is None:
            return {}
        if isinstance(value, (str, Path)):
            return {"root": value}
        return value


class ServerOptions(BaseModel):
    """Validated construction options for a `RouteServer`."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    is_prod: Optional[bool] = None
    use: List[Any] = Field(default_factory=list)
    render: Optional[Callable] = None
    routes: RoutesOptions = Field(default_factory=RoutesOptions)

    @field_validator("routes", mode="before")
    @classmethod
    def _routes_shorthand(cls, value):
        # a bare string is the include directory or glob
        if value is None:
            return {}
        if isinstance(value, (str, Path)):
            return {"include": str(value)}
        return value

    @field_validator("use", mode="before")
    @classmethod
    def _default_use(cls, value):
        return value or []


def load_route_config(filepath) -> List[RouteDescriptor]:
    """
    Read an ordered route list from a YAML file.

    The file holds either a list of route entries or a mapping with a
    ``routes`` key holding that list.

    Args:
        filepath (str | Path): Location of the route file.

    Returns:
        list[RouteDescriptor]: Routes in file order.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigurationError: If an entry is not a valid route.
    """
    data = load_yaml_file(filepath, allow_list=True)
    if isinstance(data, dict):
        data = data.get("routes") or []

    routes = []
    for index, entry in enumerate(data):
        try:
            routes.append(RouteDescriptor.model_validate(entry))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid route #{index} in {filepath}: {e}", str(filepath))
    logger.info(f"Loaded {len(routes)} routes from {filepath}")
    return routes


def split_glob(include) -> Tuple[Path, Optional[str]]:
    """
    Split an include value into its base directory and glob pattern.

    ``"./controllers/**/*.py"`` becomes ``(Path("./controllers"), "**/*.py")``;
    a plain directory returns ``(Path(include), None)``.
    """
    parts = Path(include).parts
    for index, part in enumerate(parts):
        if has_magic(part):
            base = Path(*parts[:index]) if index else Path(".")
            return base, "/".join(parts[index:])
    return Path(include), None


def normalize_options(options=None) -> ServerOptions:
    """
    Validate `options` and apply the dependent defaults.

    Args:
        options (dict | ServerOptions | None): Raw construction options.

    Returns:
        ServerOptions: Options with `is_prod`, `routes.include`,
        `routes.static.root` and `routes.exclude` always set, and
        `routes.routes` read from `routes.conf` when not given.

    Raises:
        ConfigurationError: If the options fail validation.
    """
    if isinstance(options, ServerOptions):
        opts = options.model_copy(update={"routes": options.routes.model_copy(deep=True)})
    else:
        try:
            opts = ServerOptions.model_validate(options or {})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid server options: {e}", "options")

    settings = get_settings()
    if opts.is_prod is None:
        opts.is_prod = settings.is_prod

    routes = opts.routes

    if routes.routes is None and routes.conf is not None:
        if routes.conf.is_file():
            routes.routes = load_route_config(routes.conf)
        else:
            logger.warning(f"Route config {routes.conf} not found; relying on handler conventions")

    if routes.include is None:
        if routes.conf is not None:
            routes.include = routes.conf.resolve().parent
        elif settings.routes:
            routes.include = Path(settings.routes)
        else:
            routes.include = PATH_DEFAULT_ROUTES

    base, pattern = split_glob(routes.include)
    routes.include = base.resolve()
    if pattern:
        routes.pattern = pattern

    if routes.static.root is None:
        routes.static.root = routes.include / DIRNAME_STATIC
    routes.static.root = routes.static.root.resolve()

    if routes.exclude is None:
        static_rel = Path(os.path.relpath(routes.static.root, routes.include)).as_posix()
        routes.exclude = [f"{static_rel}/**"] + list(EXCLUDE_DEPENDENCIES)

    logger.debug(f"Normalized options: include={routes.include} pattern={routes.pattern} "
                 f"static={routes.static.root} exclude={routes.exclude} is_prod={opts.is_prod}")
    return opts
