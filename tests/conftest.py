"""
Pytest configuration and fixtures for Print Customizer tests.

Provides shared fixtures: the Flask app, Pillow-generated sample images,
product option models, a recording drawing surface and order
collaborators that succeed or fail on demand.
"""

import asyncio
import io
from typing import List

import pytest
from PIL import Image

from customizer import create_app
from customizer.config import AppConfig
from customizer.ingest import ImageFile, read_dimensions
from customizer.options import build_product_options
from customizer.orders import InMemoryOrderCollaborator


ACRYLIC_RECORD = {
    'id': '1',
    'name': 'Acrylic Photo Frame',
    'category': 'Acrylic',
    'basePrice': 1299,
    'sizes': [
        {'name': 'Small (8×10)', 'price': 0},
        {'name': 'Medium (12×16)', 'price': 400},
        {'name': 'Large (16×20)', 'price': 900},
    ],
    'frames': [
        {'name': 'No Frame', 'price': 0, 'id': 'none'},
        {'name': 'Black Frame', 'price': 299, 'color': '#1a1a1a'},
        {'name': 'White Frame', 'price': 299, 'color': '#f5f5f5'},
    ],
    'images': ['/images/acrylic-1.jpg', '/images/acrylic-2.jpg'],
}

CANVAS_RECORD = {
    'id': 'cp-3',
    'name': 'Canvas Print',
    'category': 'Canvas',
    'base_price': 999,
}

COLLAGE_RECORD = {
    'id': 'wp-7',
    'name': 'Collage Wall Photo',
    'category': 'Wall Photo',
    'base_price': 1599,
}


@pytest.fixture
def app_config(tmp_path):
    """Configuration with defaults and logs kept out of the repo."""
    return AppConfig(SECRET_KEY='test-key', TESTING=True, LOG_FILE=str(tmp_path / 'logs' / 'test.log'))


@pytest.fixture
def make_image_file():
    """Factory for in-memory image uploads."""
    def _make(filename='photo.jpg', size=(800, 800), color=(200, 40, 40)):
        fmt = 'PNG' if filename.lower().endswith('.png') else 'JPEG'
        buffer = io.BytesIO()
        Image.new('RGB', size, color).save(buffer, format=fmt)
        content_type = 'image/png' if fmt == 'PNG' else 'image/jpeg'
        return ImageFile(filename, content_type, buffer.getvalue())
    return _make


@pytest.fixture
def sample_photo(make_image_file):
    return make_image_file('photo.jpg', (800, 800))


@pytest.fixture
def corrupt_file():
    return ImageFile('broken.jpg', 'image/jpeg', b'definitely not a jpeg')


@pytest.fixture
def acrylic_product():
    return build_product_options(ACRYLIC_RECORD)


@pytest.fixture
def canvas_product():
    return build_product_options(CANVAS_RECORD)


@pytest.fixture
def collage_product():
    return build_product_options(COLLAGE_RECORD)


class RecordingSurface:
    """Drawing surface that records calls instead of rasterizing."""

    def __init__(self, width, height):
        self.width = width
        self.height = height
        self.draws = []
        self.clears = 0
        self.disposed = False

    def draw_image_covering(self, image, state):
        self.draws.append((image.size, state))

    def clear(self):
        self.clears += 1

    def dispose(self):
        self.disposed = True

    def snapshot(self):
        return Image.new('RGB', (self.width, self.height), '#f5f5f5')


class SurfaceRecorder:
    """Surface factory that keeps every surface it created."""

    def __init__(self):
        self.created: List[RecordingSurface] = []

    def __call__(self, width, height):
        surface = RecordingSurface(width, height)
        self.created.append(surface)
        return surface

    @property
    def current(self):
        return self.created[-1]


@pytest.fixture
def surfaces():
    return SurfaceRecorder()


class FailingCollaborator:
    """Order collaborator whose every call fails."""

    def __init__(self, message="Cart service unavailable"):
        self.message = message
        self.calls = 0

    async def add_to_cart(self, intent):
        self.calls += 1
        raise RuntimeError(self.message)

    async def buy_now(self, intent):
        self.calls += 1
        raise RuntimeError(self.message)


@pytest.fixture
def failing_collaborator():
    return FailingCollaborator()


@pytest.fixture
def collaborator():
    return InMemoryOrderCollaborator()


class ControlledDecoder:
    """
    Decoder whose results are released by the test, one file at a time,
    so completion order can differ from request order.
    """

    def __init__(self):
        self._gates = {}

    def _gate(self, filename):
        if filename not in self._gates:
            self._gates[filename] = asyncio.Event()
        return self._gates[filename]

    async def __call__(self, file):
        await self._gate(file.filename).wait()
        return read_dimensions(file.data)

    def release(self, filename):
        self._gate(filename).set()


@pytest.fixture
def controlled_decoder():
    """Must only be used from inside a running event loop."""
    return ControlledDecoder()


@pytest.fixture
def app(tmp_path, collaborator, surfaces):
    """Create and configure a test Flask application."""
    app = create_app('testing', overrides={
        'TESTING': True,
        'SECRET_KEY': 'test-key',
        'LOG_FILE': str(tmp_path / 'logs' / 'app.log'),
    }, collaborator=collaborator, surface_factory=surfaces)
    yield app


@pytest.fixture
def client(app):
    """Create a test client for the Flask application."""
    return app.test_client()
