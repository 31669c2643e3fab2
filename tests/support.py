import textwrap
from pathlib import Path


def write_tree(root, files: dict) -> Path:
    """Create `files` ({relative path: source}) under `root`."""
    root = Path(root)
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip(), encoding="utf-8")
    return root


HELLO_HANDLER = """
def handler(ctx, request, response, done):
    done({"name": "World"})
"""

STATUS_HANDLER = """
get = "/status"

def handler(ctx, request, response, done):
    done("OK")
"""

HELLO_ROUTE = {
    "method": "get",
    "path": "/hello",
    "name": "hello",
    "tags": {"template": "hello.html"},
}
