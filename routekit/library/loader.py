"""
Import handler modules from the filesystem and classify them.

A loaded module becomes one of two handler kinds, decided once per load:

- `FunctionHandler`: the module exposes a callable ``handler`` and no
  binding attributes; it can only be bound by an explicit route.
- `DescriptorHandler`: the module also declares where it lives, through a
  string ``path``/``get``, ``post`` or ``all`` attribute, and optionally a
  ``template``.

In production a module is imported once. In development the file's
modification signature is checked on every access and the module is
re-imported only when the file changed.

Handler modules live in a package registered for their base directory, so
a handler can import a sibling helper either relatively
(``from . import helpers``) or by name (``import helpers``). Helpers are
imported by the normal import system and are not reloaded.
"""

import hashlib
import importlib.util
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from types import ModuleType
from typing import Callable, Dict, Optional, Tuple, Union

from routekit.constants import BINDING_ATTRIBUTES, HANDLER_MODULE_PREFIX
from routekit.library.discovery import HandlerRecord
from routekit.library.exceptions import HandlerLoadError

logger = logging.getLogger(__name__)


def noop_handler(ctx, request, response, done):
    """Bound to routes whose module exposes no ``handler``."""
    done(None)


@dataclass(frozen=True)
class FunctionHandler:
    handler: Callable


@dataclass(frozen=True)
class DescriptorHandler:
    method: str
    path: str
    handler: Callable
    template: Optional[str] = None


Handler = Union[FunctionHandler, DescriptorHandler]


def classify_module(module: ModuleType) -> Optional[Handler]:
    """
    Decide which kind of handler `module` provides.

    Returns:
        FunctionHandler | DescriptorHandler | None: None if the module has
        no callable ``handler``.
    """
    handler = getattr(module, "handler", None)
    if not callable(handler):
        return None

    for attribute, method in BINDING_ATTRIBUTES:
        path = getattr(module, attribute, None)
        # modules routinely import names like `path`; only strings bind
        if isinstance(path, str) and path:
            template = getattr(module, "template", None)
            return DescriptorHandler(
                method=method,
                path=path,
                handler=handler,
                template=template if isinstance(template, str) else None,
            )
    return FunctionHandler(handler)


@dataclass
class _LoadedModule:
    module: ModuleType
    kind: Optional[Handler]
    signature: Tuple[int, int] = field(default=(0, 0))


class HandlerLoader:
    """
    Loads and caches handler modules for one server instance.

    Args:
        base (str | Path): Handler directory. Its handlers are loaded into a
            package whose ``__path__`` is this directory, and the directory
            is appended to ``sys.path``.
        is_prod (bool): Cache modules for the life of the process instead of
            reloading them when their file changes.
    """

    def __init__(self, base=None, is_prod: bool = False):
        self.logger = logger.getChild("HandlerLoader")
        self.is_prod = is_prod
        self.base = Path(base).resolve() if base is not None else None
        self._modules: Dict[Path, _LoadedModule] = {}

        self.package = HANDLER_MODULE_PREFIX
        if self.base is not None:
            # one package per directory so equal handler names never collide
            digest = hashlib.sha1(str(self.base).encode("utf-8")).hexdigest()[:10]
            self.package = f"{HANDLER_MODULE_PREFIX}_{digest}"

    def module_name(self, record: HandlerRecord) -> str:
        return f"{self.package}.{record.full_name}"

    def _register_package(self) -> None:
        if self.base is None:
            return
        if self.package not in sys.modules:
            package = ModuleType(self.package)
            package.__path__ = [str(self.base)]
            package.__package__ = self.package
            sys.modules[self.package] = package
            self.logger.debug(f"Registered handler package '{self.package}' for {self.base}")
        if str(self.base) not in sys.path:
            sys.path.append(str(self.base))

    @staticmethod
    def _signature(file_path: Path) -> Tuple[int, int]:
        try:
            stat = file_path.stat()
        except OSError:
            return (0, 0)
        return (stat.st_mtime_ns, stat.st_size)

    def _import(self, record: HandlerRecord) -> ModuleType:
        module_name = self.module_name(record)
        self._register_package()
        try:
            spec = importlib.util.spec_from_file_location(module_name, str(record.file_path))
            if spec is None or spec.loader is None:
                raise ImportError(f"no loader for {record.file_path}")
            module = importlib.util.module_from_spec(spec)
            sys.modules[module_name] = module
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise HandlerLoadError(f"Failed to load handler {record.file_path}: {e}", record.full_name) from e
        return module

    def is_stale(self, record: HandlerRecord) -> bool:
        """True if the module was never loaded or its file changed since."""
        loaded = self._modules.get(record.file_path)
        if loaded is None:
            return True
        if self.is_prod:
            return False
        return loaded.signature != self._signature(record.file_path)

    def load(self, record: HandlerRecord) -> Optional[Handler]:
        """
        Return the classified handler for `record`, importing it if needed.

        Raises:
            HandlerLoadError: If executing the module raises.
        """
        if not self.is_stale(record):
            return self._modules[record.file_path].kind

        reloading = record.file_path in self._modules
        signature = self._signature(record.file_path)
        module = self._import(record)
        kind = classify_module(module)
        self._modules[record.file_path] = _LoadedModule(module=module, kind=kind, signature=signature)

        if reloading:
            self.logger.info(f"Reloaded handler '{record.full_name}' from {record.file_path}")
        else:
            self.logger.debug(f"Loaded handler '{record.full_name}' as {type(kind).__name__}")
        return kind

    def unload(self, record: HandlerRecord) -> None:
        """Forget a loaded module so a later load starts from a clean import."""
        self._modules.pop(record.file_path, None)
        sys.modules.pop(self.module_name(record), None)
        self.logger.debug(f"Unloaded handler '{record.full_name}'")

    def handler_for(self, record: HandlerRecord) -> Callable:
        """The current ``handler`` callable for `record`, or `noop_handler`."""
        kind = self.load(record)
        if kind is None:
            return noop_handler
        return kind.handler

    def __contains__(self, record: HandlerRecord):
        return record.file_path in self._modules
