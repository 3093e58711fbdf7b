"""
Pytest configuration and shared fixtures
"""
import pytest
from fastapi.testclient import TestClient
from pathlib import Path
import sys
import os

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables before importing app
os.environ.setdefault("MAX_FILE_SIZE", str(5 * 1024 * 1024))

from main import app


def make_image_bytes(size=(64, 48), fmt="PNG", mode="RGB", noisy=False, color=(120, 130, 140)):
    """Encode a synthetic image; noisy images resist compression."""
    from PIL import Image as PILImage  # type: ignore
    import io

    if noisy:
        img = PILImage.frombytes(mode, size, os.urandom(size[0] * size[1] * len(mode)))
    else:
        img = PILImage.new(mode, size, color=color if mode != "RGBA" else color + (255,))
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def make_quadrant_image(size=(40, 20)):
    """Image whose four quadrants have distinct colors, for orientation checks."""
    from PIL import Image as PILImage  # type: ignore

    w, h = size
    img = PILImage.new("RGB", size)
    for x in range(w):
        for y in range(h):
            if x < w // 2 and y < h // 2:
                img.putpixel((x, y), (255, 0, 0))
            elif y < h // 2:
                img.putpixel((x, y), (0, 255, 0))
            elif x < w // 2:
                img.putpixel((x, y), (0, 0, 255))
            else:
                img.putpixel((x, y), (255, 255, 0))
    return img


@pytest.fixture
def client():
    """Create a test client for the FastAPI app"""
    return TestClient(app)


@pytest.fixture
def sample_image_bytes():
    """Small solid PNG"""
    return make_image_bytes((512, 384))


@pytest.fixture
def noisy_png_bytes():
    """Large noisy PNG (roughly 1.4MB) that needs real shrinking to fit a budget"""
    return make_image_bytes((800, 600), noisy=True)
