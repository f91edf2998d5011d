import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode

import aiohttp

from docanalysis.utils.config import Settings
from docanalysis.utils.credentials import Credentials
from docanalysis.utils.errors import InvalidResponse, TransportError

logger = logging.getLogger(__name__)

KEY_HEADER = "Ocp-Apim-Subscription-Key"


def create_session(settings: Settings) -> aiohttp.ClientSession:
    timeout = aiohttp.ClientTimeout(
        total=settings.request_timeout,
        connect=settings.connect_timeout
    )
    return aiohttp.ClientSession(timeout=timeout)


def auth_headers(credentials: Credentials) -> Dict[str, str]:
    return {KEY_HEADER: credentials.key}


def analyze_url(credentials: Credentials, model_id: str, api_version: str) -> str:
    query = urlencode({"api-version": api_version})
    return f"{credentials.endpoint}documentModels/{quote(model_id, safe='')}:analyze?{query}"


def result_url(credentials: Credentials, model_id: str, result_id: str, api_version: str) -> str:
    query = urlencode({"api-version": api_version})
    return (
        f"{credentials.endpoint}documentModels/{quote(model_id, safe='')}"
        f"/analyzeResults/{quote(result_id, safe='')}?{query}"
    )


@asynccontextmanager
async def send(session: aiohttp.ClientSession, method: str, url: str, **kwargs):
    """Issue one request, translating connection failures into TransportError."""
    try:
        async with session.request(method, url, **kwargs) as response:
            yield response
    except asyncio.TimeoutError as e:
        raise TransportError(f"{method} {strip_query(url)} timed out") from e
    except aiohttp.ClientError as e:
        raise TransportError(f"{method} {strip_query(url)} failed: {e}") from e


async def read_text(response: aiohttp.ClientResponse) -> str:
    try:
        return await response.text()
    except UnicodeDecodeError:
        return ""


async def read_json(response: aiohttp.ClientResponse) -> Any:
    text = await read_text(response)
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidResponse(f"Response body is not valid JSON: {e}") from e


def strip_query(url: Optional[str]) -> Optional[str]:
    return url.split("?", 1)[0] if url else url
