"""
tests/conftest.py
Shared fixtures: synthetic backup files and Pillow-generated images.
No real messages needed.
"""

import base64
import io

import pytest
from PIL import Image


def make_png_b64(width: int, height: int) -> str:
    buf = io.BytesIO()
    Image.new('RGB', (width, height), color=(200, 30, 30)).save(buf, format='PNG')
    return base64.b64encode(buf.getvalue()).decode('ascii')


@pytest.fixture
def png_b64():
    return make_png_b64


@pytest.fixture
def write_backup(tmp_path):
    """Write XML text (or bytes) to a backup file and return its path."""
    def _write(content, name='sms-20240101.xml'):
        path = tmp_path / name
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding='utf-8')
        return path
    return _write
