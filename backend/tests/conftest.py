"""
Shared fixtures for the test suite.
"""
import io
import os
import pytest
from unittest.mock import MagicMock
from PIL import Image
from requests.structures import CaseInsensitiveDict

# Set test environment variables BEFORE importing app modules
os.environ['TINIFY_API_KEY'] = 'test_tinify_key'
os.environ['API_KEY'] = 'test_api_key'
os.environ['FLASK_ENV'] = 'testing'


@pytest.fixture
def make_response():
    """Factory for fake ``requests.Response`` objects."""

    def _make(status_code=200, json_body=None, content=b'', content_type='application/json', headers=None):
        response = MagicMock()
        response.status_code = status_code
        response.ok = status_code < 400
        response.headers = CaseInsensitiveDict({'Content-Type': content_type, **(headers or {})})
        response.content = content
        if json_body is None:
            response.json.side_effect = ValueError('No JSON object could be decoded')
        else:
            response.json.return_value = json_body
        return response

    return _make


@pytest.fixture
def image_bytes():
    """Factory for small encoded test images."""

    def _make(size=(100, 100), fmt='JPEG', mode='RGB', color='red'):
        img = Image.new(mode, size, color=color)
        output = io.BytesIO()
        img.save(output, format=fmt)
        return output.getvalue()

    return _make
