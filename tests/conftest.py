"""Pytest configuration for amo_submit tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

from typing import Any, Callable

import httpx
import pytest

from amo_submit.settings import SubmitSettings

BASE_URL = 'https://amo.test/api/v5/'
SIGNED_URL = 'https://amo.test/files/signed.xpi'


class StaticAuth:
    """ApiAuth stand-in that counts header requests."""

    def __init__(self, token: str = 'test-token') -> None:
        self.token = token
        self.calls = 0

    async def get_auth_header(self) -> str:
        self.calls += 1
        return f'JWT {self.token}-{self.calls}'


class FakeAmoServer:
    """In-process AMO API served through httpx.MockTransport.

    Routes are keyed by (method, path-with-query). Each route holds a queue
    of responses; the last one repeats once the others are used up.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[Callable[[], httpx.Response]]] = {}

    def add(self, method: str, path: str, *responses: Any) -> None:
        factories = []
        for item in responses:
            if callable(item):
                factories.append(item)
            elif isinstance(item, tuple):
                status, payload = item
                factories.append(lambda s=status, p=payload: httpx.Response(s, json=p))
            else:
                factories.append(lambda p=item: httpx.Response(200, json=p))
        self._routes[(method, path)] = factories

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.raw_path.decode())
        queue = self._routes.get(key)
        if not queue:
            return httpx.Response(404, json={'detail': 'Not found.'})
        factory = queue.pop(0) if len(queue) > 1 else queue[0]
        return factory()

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def paths(self, method: str | None = None) -> list[str]:
        return [
            r.url.raw_path.decode()
            for r in self.requests
            if method is None or r.method == method
        ]

    def count(self, method: str, path: str) -> int:
        return self.paths(method).count(path)

    # ── Canned happy path ────────────────────────────────────────

    def happy_path(
        self,
        *,
        uuid: str = 'u1',
        guid: str = 'abc123',
        version_id: int = 42,
        addon_id: str | None = None,
        signed_body: bytes = b'signed-xpi-bytes',
    ) -> None:
        self.add('POST', '/api/v5/addons/upload/', {'uuid': uuid})
        self.add(
            'GET',
            f'/api/v5/addons/upload/{uuid}/',
            {'processed': False, 'uuid': uuid},
            {
                'processed': True,
                'valid': True,
                'uuid': uuid,
                'url': f'https://amo.test/upload/{uuid}',
                'validation': {'errors': 0, 'warnings': 1},
            },
        )
        self.add(
            'POST',
            '/api/v5/addons/addon/',
            (
                201,
                {
                    'guid': guid,
                    'current_version': {'id': version_id},
                    'latest_unlisted_version': {'id': version_id + 1},
                },
            ),
        )
        record = addon_id or guid
        self.add('PUT', f'/api/v5/addons/addon/{record}/', (202, {}))
        self.add(
            'GET',
            f'/api/v5/addons/addon/{record}/versions/?filter=all_with_unlisted',
            {'results': [{'id': version_id}, {'id': version_id - 1}]},
        )
        for vid in (version_id, version_id + 1):
            self.add(
                'GET',
                f'/api/v5/addons/addon/{record}/versions/{vid}/',
                {'file': {'status': 'unreviewed', 'url': None}},
                {'file': {'status': 'public', 'url': SIGNED_URL}},
            )
        self.add(
            'GET',
            '/files/signed.xpi',
            lambda: httpx.Response(200, content=signed_body),
        )


@pytest.fixture
def fake_amo() -> FakeAmoServer:
    return FakeAmoServer()


@pytest.fixture
def static_auth() -> StaticAuth:
    return StaticAuth()


@pytest.fixture
def xpi_file(tmp_path):
    """A small package file to upload."""
    path = tmp_path / 'my-extension.xpi'
    path.write_bytes(b'PK\x03\x04fake-xpi')
    return path


@pytest.fixture
def make_settings(tmp_path):
    """Build SubmitSettings with fast polling and a temp download dir."""
    download_dir = tmp_path / 'downloads'
    download_dir.mkdir()

    def _make(**overrides: Any) -> SubmitSettings:
        values: dict[str, Any] = {
            'api_key': 'user:12345:67',
            'api_secret': 'super-secret-value',
            'base_url': BASE_URL,
            'validation_check_interval': 0.001,
            'validation_check_timeout': 5.0,
            'approval_check_interval': 0.001,
            'approval_check_timeout': 5.0,
            'download_dir': str(download_dir),
            'saved_id_path': str(tmp_path / '.amo-upload-uuid'),
        }
        values.update(overrides)
        return SubmitSettings(**values)

    return _make
