"""Shared pytest configuration and fixtures."""

import anyio
import httpx
import pytest

from rangeserve.core import Settings
from rangeserve.main import create_app

RESOURCE_LENGTH = 1000


def make_payload(n: int) -> bytes:
    return bytes(i % 251 for i in range(n))


@pytest.fixture
def payload() -> bytes:
    return make_payload(RESOURCE_LENGTH)


@pytest.fixture
def resource_root(tmp_path, payload):
    root = tmp_path / "assets"
    root.mkdir()
    (root / "clip.mp4").write_bytes(payload)
    (root / "empty.bin").write_bytes(b"")
    (root / "nested").mkdir()
    (root / "nested" / "notes.txt").write_bytes(b"hello range")
    # outside the root; must never be reachable
    (tmp_path / "secret.txt").write_bytes(b"top secret")
    return root


@pytest.fixture
def make_settings(resource_root):
    def _make(**overrides) -> Settings:
        values = dict(
            RESOURCE_ROOT=str(resource_root),
            CHUNK_SIZE=64,
            IDLE_TIMEOUT_SECONDS=5.0,
            MAX_CONCURRENT_STREAMS=4,
            CORS_ALLOW_ORIGINS=[],
        )
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def app(make_settings):
    return create_app(make_settings())


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def http_scope(path: str, headers: dict | None = None, *, method: str = "GET", query_string: bytes = b"") -> dict:
    raw_headers = [(b"host", b"test")]
    raw_headers += [(k.lower().encode("latin-1"), v.encode("latin-1")) for k, v in (headers or {}).items()]
    return {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": "2.3"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": query_string,
        "headers": raw_headers,
        "client": ("127.0.0.1", 50000),
        "server": ("test", 80),
    }


class ASGIPeer:
    """
    Plays the client side of one ASGI request by hand.

    With `hold=True` every body message blocks in send() until `resume()`,
    which is how a client that stops reading looks to the app.
    `hang_up()` delivers http.disconnect to the app's receive().
    """

    def __init__(self, *, hold: bool = False):
        self.status = None
        self.headers: dict[str, str] = {}
        self.body = bytearray()
        self.complete = False
        self.got_body = anyio.Event()
        self._disconnect = anyio.Event()
        self._gate = anyio.Event()
        self._request_sent = False
        if not hold:
            self._gate.set()

    def hang_up(self) -> None:
        self._disconnect.set()

    def resume(self) -> None:
        self._gate.set()

    async def receive(self) -> dict:
        if not self._request_sent:
            self._request_sent = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await self._disconnect.wait()
        return {"type": "http.disconnect"}

    async def send(self, message: dict) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
            self.headers = {k.decode("latin-1"): v.decode("latin-1") for k, v in message["headers"]}
        elif message["type"] == "http.response.body":
            self.body.extend(message.get("body", b""))
            if not message.get("more_body", False):
                self.complete = True
            self.got_body.set()
            await self._gate.wait()
