"""
Request-time wrapper around a resolved handler.

Handlers are called as ``handler(ctx, request, response, done)``. They hand
their result to ``done(data)`` (or return it), and the wrapper turns that
data into either a rendered template or a raw JSON/text response.
"""

import asyncio
import inspect
import logging
import traceback
from typing import Any, Callable, List, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request

from routekit.constants import ALL_METHODS, DUMP_ENABLED, METHOD_ALL, QUERY_DUMP
from routekit.library.loader import DescriptorHandler, HandlerLoader, noop_handler
from routekit.library.resolver import ResolvedRoute
from routekit.web.context import RenderContext
from routekit.web.render import call_render

logger = logging.getLogger(__name__)

# computed from the final body, never copied from the draft
_DRAFT_SKIP_HEADERS = {b"content-length"}


def methods_for(method: str) -> List[str]:
    if method.lower() == METHOD_ALL:
        return list(ALL_METHODS)
    return [method.upper()]


def is_dump(request: Request) -> bool:
    return request.query_params.get(QUERY_DUMP) == DUMP_ENABLED


def raw_response(data: Any) -> Response:
    """Send strings and numbers as text, bytes as-is and everything else as JSON."""
    if isinstance(data, bytes):
        return Response(content=data, media_type="application/octet-stream")
    if isinstance(data, bool):
        return JSONResponse(data)
    if isinstance(data, (str, int, float)):
        return PlainTextResponse(str(data))
    return JSONResponse(jsonable_encoder(data))


def error_response(exc: BaseException, is_prod: bool) -> Response:
    if is_prod:
        return PlainTextResponse("Internal Server Error", status_code=500)
    detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return PlainTextResponse(detail, status_code=500)


def merge_draft(final: Response, draft: Response) -> Response:
    """
    Carry status, headers and cookies a handler set on its draft response.

    A content type set by the handler replaces the one the final response
    chose for its data.
    """
    final.status_code = draft.status_code
    for key, value in draft.raw_headers:
        key = key.lower()
        if key in _DRAFT_SKIP_HEADERS:
            continue
        if key == b"content-type":
            final.headers["content-type"] = value.decode("latin-1")
        else:
            final.raw_headers.append((key, value))
    return final


class Completion:
    """The ``done`` callback given to a handler; only the first call counts."""

    def __init__(self):
        self.loop = asyncio.get_running_loop()
        self.future = self.loop.create_future()
        self.called = False

    def _resolve(self, data):
        if not self.future.done():
            self.future.set_result(data)

    def __call__(self, data=None):
        if self.called:
            return
        self.called = True
        # handlers may call back from a worker thread
        self.loop.call_soon_threadsafe(self._resolve, data)


def _is_async(handler: Callable) -> bool:
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
        getattr(handler, "__call__", None)
    )


async def run_handler(handler: Callable, ctx: RenderContext, request: Request, response: Response) -> Any:
    """
    Call `handler` and wait for the data it completes with.

    Coroutine handlers are awaited on the loop; plain functions run in the
    threadpool so blocking work does not stall other requests.
    """
    done = Completion()
    if _is_async(handler):
        result = await handler(ctx, request, response, done)
    else:
        result = await run_in_threadpool(handler, ctx, request, response, done)
        if inspect.isawaitable(result):
            result = await result

    if not done.called and result is not None:
        done(result)
    return await done.future


def make_endpoint(
    route: ResolvedRoute,
    loader: HandlerLoader,
    render: Optional[Callable] = None,
    is_prod: bool = False,
):
    """
    Build the endpoint registered for `route`.

    Args:
        route (ResolvedRoute): Method, path, handler file and template.
        loader (HandlerLoader): Supplies the current handler on each request.
        render (callable): ``render(template_id, data)``; None sends raw data.
        is_prod (bool): Hide tracebacks from error responses.
    """

    async def endpoint(request: Request):
        try:
            kind = loader.load(route.record)
            handler = kind.handler if kind is not None else noop_handler
            template = route.template
            if route.descriptor is None and isinstance(kind, DescriptorHandler):
                # convention routes follow the template of the current module
                template = kind.template

            ctx = RenderContext(route.name, route.descriptor, template)
            draft = Response()
            data = await run_handler(handler, ctx, request, draft)

            template = ctx.template
            if is_dump(request) or not template or render is None:
                final = raw_response(data)
            else:
                body = await call_render(render, template, data)
                final = HTMLResponse(body)
            return merge_draft(final, draft)
        except Exception as e:
            logger.exception(f"{request.method} {request.url.path} failed in handler '{route.record.full_name}'")
            return error_response(e, is_prod)

    endpoint.__name__ = f"route_{route.record.full_name}"
    return endpoint
