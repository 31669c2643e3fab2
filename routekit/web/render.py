import inspect
import logging
from pathlib import Path
from typing import Any, Callable, Dict

from jinja2 import Environment, Template, TemplateError as JinjaTemplateError
from starlette.concurrency import run_in_threadpool

from routekit.library.exceptions import TemplateError

logger = logging.getLogger(__name__)


class TemplateRenderer:
    """
    Default render function: compiles templates found under a static root.

    Calling the renderer with a template identifier and data returns the
    rendered text. In production, compiled templates are kept in a cache
    keyed by absolute path, so each template file is read once.
    """

    def __init__(self, root, is_prod: bool = False, environment: Environment = None):
        self.logger = logger.getChild("TemplateRenderer")
        self.root = Path(root)
        self.is_prod = is_prod
        self.environment = environment or Environment(autoescape=True)
        self.cache: Dict[Path, Template] = {}

    def resolve(self, template_id: str) -> Path:
        return (self.root / template_id).resolve()

    def _read(self, path: Path) -> str:
        return path.read_text(encoding="utf-8")

    async def compile(self, path: Path) -> Template:
        try:
            source = await run_in_threadpool(self._read, path)
        except OSError as e:
            raise TemplateError(f"Cannot read template {path}: {e}", path.name) from e
        try:
            return self.environment.from_string(source)
        except JinjaTemplateError as e:
            raise TemplateError(f"Cannot compile template {path}: {e}", path.name) from e

    async def __call__(self, template_id: str, data: Any) -> str:
        path = self.resolve(template_id)

        template = self.cache.get(path) if self.is_prod else None
        if template is None:
            template = await self.compile(path)
            if self.is_prod:
                self.cache[path] = template
                self.logger.debug(f"Cached compiled template {path}")

        context = dict(data) if isinstance(data, dict) else {"data": data}
        try:
            return template.render(context)
        except JinjaTemplateError as e:
            raise TemplateError(f"Cannot render template {path}: {e}", path.name) from e


async def call_render(render: Callable, template_id: str, data: Any) -> str:
    """Invoke a sync or async render function."""
    result = render(template_id, data)
    if inspect.isawaitable(result):
        result = await result
    return result
