import json
import threading

import pytest
import requests

from modsync.models import Addon


class FakeResponse:
    def __init__(self, status_code=200, content=b"", json_data=None):
        self.status_code = status_code
        if json_data is not None:
            content = json.dumps(json_data).encode("utf-8")
        self.content = content
        self.headers = {"Content-Length": str(len(content))}

    @property
    def text(self):
        return self.content.decode("utf-8", errors="replace")

    def json(self):
        return json.loads(self.content)

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start:start + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeSession:
    """Serves canned responses keyed by (method, url) and counts every call."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.closed = False
        self._lock = threading.Lock()

    def add(self, url, response, method="GET"):
        self.routes[(method, url)] = response

    def request(self, method, url, **kwargs):
        with self._lock:
            self.calls.append((method, url, kwargs))
        route = self.routes.get((method, url))
        if route is None:
            return FakeResponse(404, b"not found")
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(url, **kwargs)
        return route

    def get(self, url, **kwargs):
        return self.request("GET", url, **kwargs)

    def close(self):
        self.closed = True

    def urls(self, method="GET"):
        return [url for m, url, _ in self.calls if m == method]


def make_addon(project_id, version="1.0", name=None, filename=None, disabled=None, sha256=None, url=None):
    name = name or f"Addon {project_id}"
    filename = filename or f"addon-{project_id}-{version}.jar"
    return Addon(
        project_id=project_id,
        file_id=project_id * 1000 + len(version),
        name=name,
        version=version,
        filename=filename,
        download_url=url or f"https://cdn.example.com/{project_id}/{filename}",
        disabled=disabled,
        sha256=sha256,
    )


def serve(session, *addons, status=200):
    for addon in addons:
        body = f"{addon.name} {addon.version}".encode("utf-8")
        session.add(addon.download_url, FakeResponse(status, body))


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def network_error():
    return requests.ConnectionError("connection refused")
