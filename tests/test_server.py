import os
import unittest
import tempfile
import logging
from pathlib import Path

from fastapi.testclient import TestClient
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware

from routekit.web.app import RouteServer, build, create_server

from support import HELLO_HANDLER, HELLO_ROUTE, STATUS_HANDLER, write_tree

logging.getLogger("routekit").setLevel(logging.CRITICAL)


class ServerTestCase(unittest.TestCase):
    """Builds a handler tree in a temporary directory for each test."""

    files = {}

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.base = Path(self.tmp.name).resolve()
        write_tree(self.base, self.files)

    def tearDown(self):
        self.tmp.cleanup()

    def make_server(self, routes=None, **options) -> RouteServer:
        options.setdefault("is_prod", False)
        routes_opts = {"include": str(self.base)}
        if routes is not None:
            routes_opts["routes"] = routes
        return create_server({"routes": routes_opts, **options})

    def client(self, server) -> TestClient:
        return TestClient(server)


# -------------------------------------------------------------------
# 1) EXPLICIT ROUTES AND TEMPLATES
# -------------------------------------------------------------------
class TestExplicitRoutes(ServerTestCase):

    files = {
        "hello.py": HELLO_HANDLER,
        "public/hello.html": "Hello {{name}}",
        "public/other.html": "Other {{name}}",
        "public/site.css": "body {}",
        "public/widget.py": "raise RuntimeError('static files are not handlers')\n",
        "override.py": """
            def handler(ctx, request, response, done):
                if request.query_params.get("alt"):
                    ctx.set_template("other.html")
                done({"name": "Override"})
        """,
    }

    def test_template_is_rendered(self):
        response = self.client(self.make_server([HELLO_ROUTE])).get("/hello")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "Hello World")
        self.assertTrue(response.headers["content-type"].startswith("text/html"))

    def test_dump_returns_raw_json(self):
        response = self.client(self.make_server([HELLO_ROUTE])).get("/hello", params={"dump": "true"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"name": "World"})
        self.assertEqual(response.headers["content-type"], "application/json")

    def test_dump_requires_literal_true(self):
        response = self.client(self.make_server([HELLO_ROUTE])).get("/hello", params={"dump": "1"})
        self.assertEqual(response.text, "Hello World")

    def test_route_without_template_sends_json(self):
        route = {"method": "get", "path": "/hello", "name": "hello"}
        response = self.client(self.make_server([route])).get("/hello")
        self.assertEqual(response.json(), {"name": "World"})

    def test_method_is_enforced(self):
        client = self.client(self.make_server([HELLO_ROUTE]))
        self.assertEqual(client.post("/hello").status_code, 405)

    def test_all_method_accepts_any_verb(self):
        route = {"path": "/hello", "name": "hello"}
        client = self.client(self.make_server([route]))
        self.assertEqual(client.post("/hello").json(), {"name": "World"})
        self.assertEqual(client.delete("/hello").json(), {"name": "World"})

    def test_set_template_overrides_configured_template(self):
        route = {"method": "get", "path": "/override", "name": "override", "tags": {"template": "hello.html"}}
        client = self.client(self.make_server([route]))
        self.assertEqual(client.get("/override").text, "Hello Override")
        self.assertEqual(client.get("/override", params={"alt": "1"}).text, "Other Override")

    def test_custom_render_function(self):
        calls = []

        def render(template_id, data):
            calls.append((template_id, data))
            return f"<{template_id}:{data['name']}>"

        response = self.client(self.make_server([HELLO_ROUTE], render=render)).get("/hello")
        self.assertEqual(response.text, "<hello.html:World>")
        self.assertEqual(calls, [("hello.html", {"name": "World"})])

    def test_async_custom_render_function(self):
        async def render(template_id, data):
            return "async " + data["name"]

        response = self.client(self.make_server([HELLO_ROUTE], render=render)).get("/hello")
        self.assertEqual(response.text, "async World")

    def test_static_assets_are_served_after_routes(self):
        client = self.client(self.make_server([HELLO_ROUTE]))
        self.assertEqual(client.get("/site.css").text, "body {}")
        self.assertEqual(client.get("/missing.css").status_code, 404)

    def test_static_root_is_not_scanned_for_handlers(self):
        server = self.make_server([HELLO_ROUTE])
        names = {record.short_name for record in server.get_handlers().values()}
        self.assertNotIn("widget", names)

    def test_unknown_handler_is_skipped(self):
        route = {"method": "get", "path": "/ghost", "name": "ghost"}
        server = self.make_server([route, HELLO_ROUTE])
        client = self.client(server)
        self.assertEqual(client.get("/ghost").status_code, 404)
        self.assertEqual(client.get("/hello").text, "Hello World")

    def test_route_config_file(self):
        write_tree(self.base, {"routes.yaml": """
            - method: get
              path: /from-file
              name: hello
              tags:
                template: hello.html
        """})
        server = create_server({"is_prod": False, "routes": {"conf": str(self.base / "routes.yaml")}})
        self.assertEqual(self.client(server).get("/from-file").text, "Hello World")

    def test_build_alias(self):
        self.assertIs(build, create_server)


# -------------------------------------------------------------------
# 2) CONVENTION ROUTES
# -------------------------------------------------------------------
class TestConventionRoutes(ServerTestCase):

    files = {
        "status.py": STATUS_HANDLER,
        "users/show.py": """
            get = "/users/:user_id"
            template = "user.html"

            def handler(ctx, request, response, done):
                done({"id": request.path_params["user_id"]})
        """,
        "submit.py": """
            post = "/submit"

            async def handler(ctx, request, response, done):
                body = await request.json()
                done({"received": body})
        """,
        "returns.py": """
            all = "/returns"

            def handler(ctx, request, response, done):
                return [1, 2, 3]
        """,
        "headers.py": """
            get = "/created"

            def handler(ctx, request, response, done):
                response.status_code = 201
                response.headers["X-Route"] = ctx.route or "convention"
                response.set_cookie("seen", "yes")
                done({"created": True})
        """,
        "twice.py": """
            get = "/twice"

            def handler(ctx, request, response, done):
                done("first")
                done("second")
        """,
        "nothing.py": """
            get = "/nothing"

            def handler(ctx, request, response, done):
                done(None)
        """,
        "helpers.py": "def format_name(name):\n    return name.title()\n",
        "route_titles.py": 'TITLE = "Dr"\n',
        "greeting.py": """
            get = "/greeting"

            from . import helpers
            from route_titles import TITLE

            def handler(ctx, request, response, done):
                done(f"{TITLE} {helpers.format_name('ada lovelace')}")
        """,
        "feed.py": """
            get = "/feed"

            def handler(ctx, request, response, done):
                response.headers["content-type"] = "application/xml"
                done("<feed/>")
        """,
        "flag.py": """
            get = "/flag"

            def handler(ctx, request, response, done):
                done(True)
        """,
        "public/user.html": "User {{ id }}",
    }

    def test_handler_imports_sibling_helpers(self):
        response = self.client(self.make_server()).get("/greeting")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "Dr Ada Lovelace")

    def test_handler_content_type_is_kept(self):
        response = self.client(self.make_server()).get("/feed")
        self.assertEqual(response.text, "<feed/>")
        self.assertEqual(response.headers["content-type"], "application/xml")
        self.assertEqual(response.headers.get_list("content-type"), ["application/xml"])

    def test_booleans_are_sent_as_json(self):
        response = self.client(self.make_server()).get("/flag")
        self.assertEqual(response.text, "true")
        self.assertEqual(response.headers["content-type"], "application/json")

    def test_get_binding_with_raw_text(self):
        response = self.client(self.make_server()).get("/status")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "OK")
        self.assertTrue(response.headers["content-type"].startswith("text/plain"))

    def test_path_params_and_module_template(self):
        client = self.client(self.make_server())
        self.assertEqual(client.get("/users/42").text, "User 42")
        self.assertEqual(client.get("/users/42", params={"dump": "true"}).json(), {"id": "42"})

    def test_post_binding_with_async_handler(self):
        client = self.client(self.make_server())
        response = client.post("/submit", json={"a": 1})
        self.assertEqual(response.json(), {"received": {"a": 1}})
        # unclaimed methods fall through to the static root
        self.assertEqual(client.get("/submit").status_code, 404)

    def test_return_value_completes_request(self):
        self.assertEqual(self.client(self.make_server()).put("/returns").json(), [1, 2, 3])

    def test_draft_response_status_headers_and_cookies(self):
        response = self.client(self.make_server()).get("/created")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.headers["x-route"], "convention")
        self.assertEqual(response.cookies.get("seen"), "yes")
        self.assertEqual(response.json(), {"created": True})

    def test_only_first_done_counts(self):
        self.assertEqual(self.client(self.make_server()).get("/twice").text, "first")

    def test_none_is_sent_as_json_null(self):
        response = self.client(self.make_server()).get("/nothing")
        self.assertEqual(response.text, "null")

    def test_get_handlers_reports_orphans(self):
        handlers = self.make_server().get_handlers()
        by_name = {record.short_name: record for record in handlers.values()}
        self.assertTrue(by_name["status"].is_handled)
        self.assertTrue(by_name["show"].is_handled)
        self.assertFalse(by_name["helpers"].is_handled)
        self.assertEqual(by_name["show"].full_name, "users_show")

    def test_explicit_route_takes_precedence(self):
        route = {"method": "get", "path": "/explicit-status", "name": "status"}
        client = self.client(self.make_server([route]))
        self.assertEqual(client.get("/explicit-status").text, "OK")
        self.assertEqual(client.get("/status").status_code, 404)


# -------------------------------------------------------------------
# 3) ERRORS
# -------------------------------------------------------------------
class TestErrorResponses(ServerTestCase):

    files = {
        "explode.py": """
            get = "/explode"

            def handler(ctx, request, response, done):
                return 1 / 0
        """,
        "badtemplate.py": """
            get = "/bad-template"
            template = "missing.html"

            def handler(ctx, request, response, done):
                done({})
        """,
        "broken.py": "raise ImportError('cannot start')\n",
    }

    def test_handler_error_in_development_shows_traceback(self):
        response = self.client(self.make_server(is_prod=False)).get("/explode")
        self.assertEqual(response.status_code, 500)
        self.assertIn("ZeroDivisionError", response.text)

    def test_handler_error_in_production_is_generic(self):
        response = self.client(self.make_server(is_prod=True)).get("/explode")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.text, "Internal Server Error")

    def test_template_error_responds_500(self):
        client = self.client(self.make_server(is_prod=True))
        response = client.get("/bad-template")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(client.get("/bad-template", params={"dump": "true"}).json(), {})

    def test_broken_module_does_not_abort_construction(self):
        route = {"method": "get", "path": "/broken", "name": "broken"}
        server = self.make_server([route])
        client = self.client(server)
        self.assertEqual(client.get("/broken").status_code, 404)
        self.assertEqual(client.get("/explode").status_code, 500)


# -------------------------------------------------------------------
# 4) RELOADING
# -------------------------------------------------------------------
class TestHandlerReloading(ServerTestCase):

    files = {"version.py": 'get = "/version"\n\ndef handler(ctx, request, response, done):\n    done("v1")\n'}

    def edit_handler(self, text):
        path = self.base / "version.py"
        path.write_text(f'get = "/version"\n\ndef handler(ctx, request, response, done):\n    done("{text}")\n',
                        encoding="utf-8")
        stat = path.stat()
        os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 5_000_000_000))

    def test_development_picks_up_edits(self):
        client = self.client(self.make_server(is_prod=False))
        self.assertEqual(client.get("/version").text, "v1")
        self.edit_handler("v2")
        self.assertEqual(client.get("/version").text, "v2")

    def test_production_keeps_first_load(self):
        client = self.client(self.make_server(is_prod=True))
        self.assertEqual(client.get("/version").text, "v1")
        self.edit_handler("v2")
        self.assertEqual(client.get("/version").text, "v1")


# -------------------------------------------------------------------
# 5) MIDDLEWARE AND CONTEXT
# -------------------------------------------------------------------
class TagMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, tag="class"):
        super().__init__(app)
        self.tag = tag

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Tag"] = self.tag
        return response


class TestMiddlewareAndContext(ServerTestCase):

    files = {
        "whoami.py": """
            get = "/whoami"

            def handler(ctx, request, response, done):
                ctx.logger.info("answering")
                done({"template": ctx.template, "route": ctx.route})
        """,
        "named.py": """
            def handler(ctx, request, response, done):
                done({"name": ctx.route.name, "path": ctx.route.path})
        """,
    }

    def test_use_function_middleware(self):
        server = self.make_server()

        async def add_header(request, call_next):
            response = await call_next(request)
            response.headers["X-Used"] = "yes"
            return response

        server.use(add_header)
        response = self.client(server).get("/whoami")
        self.assertEqual(response.headers["x-used"], "yes")

    def test_use_class_with_options(self):
        server = self.make_server()
        server.use(TagMiddleware, tag="kw")
        self.assertEqual(self.client(server).get("/whoami").headers["x-tag"], "kw")

    def test_use_option_list(self):
        server = self.make_server(use=[Middleware(TagMiddleware, tag="listed")])
        self.assertEqual(self.client(server).get("/whoami").headers["x-tag"], "listed")

    def test_use_rejects_non_middleware(self):
        with self.assertRaises(TypeError):
            self.make_server().use(42)

    def test_context_without_route(self):
        response = self.client(self.make_server()).get("/whoami")
        self.assertEqual(response.json(), {"template": None, "route": None})

    def test_context_exposes_route_descriptor(self):
        route = {"method": "get", "path": "/named", "name": "named"}
        response = self.client(self.make_server([route])).get("/named")
        self.assertEqual(response.json(), {"name": "named", "path": "/named"})

    def test_context_logger_prefixes_route(self):
        server = self.make_server()
        with self.assertLogs("routekit.handlers", level="INFO") as logs:
            self.client(server).get("/whoami")
        self.assertIn("[/whoami] answering", logs.output[0])

    def test_start_is_idempotent(self):
        server = self.make_server()
        self.assertIs(server.start(), server.start())
        self.assertIs(server.start(), server.app)


if __name__ == '__main__':
    unittest.main()
