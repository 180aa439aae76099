import json
from unittest.mock import AsyncMock, MagicMock

import pytest


def make_response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    body = json.dumps(payload).encode() if payload is not None else b""
    response.content = body
    response.text = body.decode()
    response.json.return_value = payload
    return response


@pytest.fixture
def mock_http(mocker):
    """
    Patch httpx.AsyncClient; returns the client object used inside `async with`.

    Queue responses with client.request.side_effect / client.post.return_value.
    """
    client_cls = mocker.patch("httpx.AsyncClient")
    client = client_cls.return_value.__aenter__.return_value
    client.request = AsyncMock(return_value=make_response(200, {}))
    client.post = AsyncMock(return_value=make_response(200, {}))
    return client
