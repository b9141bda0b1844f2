"""Shared test doubles."""
from typing import Dict, Optional
from unittest.mock import AsyncMock, MagicMock

from pydantic import BaseModel

from storyintake.api.errors import SchemaValidationError
from storyintake.api.streaming import parse_object


class Item(BaseModel):
    name: str
    count: int = 0


async def chunks(*parts):
    for part in parts:
        yield part


def fake_response(status: int = 200, json_data=None, text: str = "", headers: Optional[Dict[str, str]] = None, lines=()):
    """aiohttp-like response double."""
    response = MagicMock()
    response.status = status
    response.headers = headers or {}
    response.json = AsyncMock(return_value=json_data)
    response.text = AsyncMock(return_value=text)
    response.release = MagicMock()
    response.content = chunks(*lines)
    return response


def validation_error(text: str = '{"name": 5}') -> SchemaValidationError:
    try:
        parse_object(text, Item)
    except SchemaValidationError as e:
        return e
    raise AssertionError(f"{text!r} unexpectedly validated")
