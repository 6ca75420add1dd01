import io
import json
import zipfile

import httpx
import pytest

from yesimbot_scaffold.runner import CommandResult


class FakeRunner:
    """Stands in for ``run_command``.

    responses maps a command prefix to either (returncode, stdout, stderr) or
    a callable ``(cmd, kwargs) -> CommandResult``. Executables listed in
    ``missing`` behave as if not installed. Anything else succeeds, and
    ``--version`` calls print ``1.2.3``.
    """

    def __init__(self, responses=None, missing=()):
        self.calls = []
        self.responses = dict(responses or {})
        self.missing = set(missing)

    def __call__(self, cmd, **kwargs):
        cmd = tuple(cmd)
        self.calls.append((cmd, kwargs))
        for prefix, response in self.responses.items():
            if cmd[: len(prefix)] == prefix:
                if callable(response):
                    return response(cmd, kwargs)
                return CommandResult(cmd, *response)
        if cmd[0] in self.missing:
            return CommandResult(cmd, 127, "", f"command not found: {cmd[0]}")
        if cmd[-1] == "--version":
            return CommandResult(cmd, 0, "1.2.3\n")
        return CommandResult(cmd, 0)

    @property
    def commands(self):
        return [cmd for cmd, _ in self.calls]


def build_zip(files: dict) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in files.items():
            if isinstance(content, dict):
                content = json.dumps(content)
            zf.writestr(name, content)
    return buf.getvalue()


@pytest.fixture
def fake_runner():
    return FakeRunner


@pytest.fixture
def make_zip():
    return build_zip


@pytest.fixture
def mock_client():
    """Factory for an httpx client served by a handler; requests are recorded on ``client.requests``."""

    def factory(content: bytes = b"", status: int = 200, handler=None):
        requests = []

        def default_handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, content=content)

        def record(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return (handler or default_handler)(request)

        client = httpx.Client(transport=httpx.MockTransport(record))
        client.requests = requests
        return client

    return factory


@pytest.fixture
def core_snapshot(make_zip):
    """A branch snapshot of a small monorepo whose core package is 2.3.1."""
    return make_zip({
        "Proj-dev/package.json": {"name": "proj", "private": True, "packageManager": "yarn@1.22.19"},
        "Proj-dev/packages/core/package.json": {"name": "proj-core", "version": "2.3.1", "packageManager": "bun@1.0.0"},
        "Proj-dev/packages/core/src/index.ts": "export {}\n",
        "Proj-dev/packages/extra/package.json": {"name": "proj-extra", "version": "0.4.0"},
        "Proj-dev/packages/core/node_modules/dep/package.json": {"name": "dep", "packageManager": "pnpm@8"},
    })
