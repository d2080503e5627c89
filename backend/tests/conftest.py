"""
Shared fixtures for backend tests.

Every test gets its own SplitStore so sessions never leak between tests, and
the scanner is replaced by either demo mode (None) or a ScannerClient wired
to an httpx.MockTransport.
"""
import struct
import zlib

import pytest
import httpx
from httpx import ASGITransport, AsyncClient

from services.scanner_service import ScannerClient
from services.split_store import SplitStore


@pytest.fixture
def store():
    """A fresh, empty session store."""
    return SplitStore()


def make_scanner(handler, *, max_attempts=3):
    """ScannerClient that answers from `handler(request) -> httpx.Response` without sleeping."""
    return ScannerClient(
        api_key="test-key",
        base_url="https://scanner.test",
        poll_interval=0,
        max_attempts=max_attempts,
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def scanner_factory():
    return make_scanner


def _png_chunk(kind: bytes, data: bytes) -> bytes:
    return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", zlib.crc32(kind + data))


@pytest.fixture
def oversized_png():
    """Tiny PNG whose header claims 20000x20000 pixels, past Pillow's decompression-bomb limit."""
    header = struct.pack(">IIBBBBB", 20000, 20000, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", zlib.compress(b""))
        + _png_chunk(b"IEND", b"")
    )


@pytest.fixture
def app(store):
    """Full application with the session store swapped for the test's own."""
    from main import app as main_app
    from services.split_store import get_split_store
    from services.scanner_service import get_scanner

    main_app.dependency_overrides[get_split_store] = lambda: store
    main_app.dependency_overrides[get_scanner] = lambda: None
    yield main_app
    main_app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as c:
        yield c
