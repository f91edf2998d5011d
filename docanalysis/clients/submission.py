import logging
from pathlib import Path
from typing import Optional, Union
from urllib.parse import unquote, urlsplit

import aiofiles
import aiohttp

from docanalysis.clients.http import analyze_url, auth_headers, read_text, send, strip_query
from docanalysis.models.schemas import (
    AnalysisRequest,
    DocumentSource,
    OperationHandle,
    is_valid_model_id,
)
from docanalysis.utils.config import Settings
from docanalysis.utils.credentials import Credentials
from docanalysis.utils.errors import InvalidInput, RequestRejected

logger = logging.getLogger(__name__)

OPERATION_LOCATION_HEADER = "Operation-Location"


def parse_operation_location(value: Optional[str]) -> Optional[str]:
    """Return the result id carried by an Operation-Location URL.

    The id is the last path segment, without the query string. ``None`` is
    returned when the value is missing or has no usable segment.
    """
    if not value or not value.strip():
        return None
    try:
        path = urlsplit(value.strip()).path
    except ValueError:
        return None
    if "/" not in path:
        return None
    segment = unquote(path.rstrip("/").rsplit("/", 1)[-1])
    return segment or None


def validate_model_id(model_id: Optional[str]) -> str:
    if not is_valid_model_id(model_id):
        raise InvalidInput(
            f"Invalid model id {model_id!r}: expected 2-64 characters from "
            f"letters, digits, '.', '_', '~' or '-'"
        )
    return model_id


def validate_source_url(url: Optional[str]) -> str:
    try:
        parts = urlsplit((url or "").strip())
    except ValueError:
        parts = None
    if not parts or parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        raise InvalidInput(f"Document URL must be an absolute http(s) URL, got {url!r}")
    return url.strip()


def build_url_request(model_id: str, url: str) -> AnalysisRequest:
    return AnalysisRequest(
        model_id=validate_model_id(model_id),
        source=DocumentSource(url=validate_source_url(url)),
    )


async def build_file_request(
    model_id: str,
    path: Union[str, Path],
    settings: Settings,
) -> AnalysisRequest:
    """Validate a local document and load its bytes into an AnalysisRequest."""
    validate_model_id(model_id)
    file_path = Path(path).expanduser()

    if not file_path.is_file():
        raise InvalidInput(f"Document not found: {file_path}")

    file_ext = file_path.suffix.lower().lstrip(".")
    if file_ext not in settings.allowed_extensions:
        raise InvalidInput(
            f"File type .{file_ext or 'unknown'} not supported. "
            f"Allowed: {', '.join(settings.allowed_extensions)}"
        )

    file_size = file_path.stat().st_size
    if file_size == 0:
        raise InvalidInput(f"Document is empty: {file_path}")
    if file_size > settings.max_file_size:
        raise InvalidInput(
            f"File too large. Size: {file_size // 1024}KB, "
            f"Max: {settings.max_file_size // 1024}KB"
        )

    try:
        async with aiofiles.open(file_path, "rb") as f:
            content = await f.read()
    except OSError as e:
        raise InvalidInput(f"Cannot read document {file_path}: {e}") from e

    return AnalysisRequest(
        model_id=model_id,
        source=DocumentSource(file_bytes=content, filename=file_path.name),
    )


class SubmissionClient:
    """Starts analyze operations and hands back their operation handle."""

    def __init__(self, session: aiohttp.ClientSession):
        self._session = session

    async def submit(
        self,
        request: AnalysisRequest,
        credentials: Credentials,
        api_version: str,
    ) -> OperationHandle:
        validate_model_id(request.model_id)
        url = analyze_url(credentials, request.model_id, api_version)
        headers = auth_headers(credentials)

        if request.source.is_url:
            validate_source_url(request.source.url)
            body = {"json": {"urlSource": request.source.url}}
            described = strip_query(request.source.url)
        else:
            headers["Content-Type"] = "application/octet-stream"
            body = {"data": request.source.file_bytes}
            described = f"{request.source.filename or 'document'} ({len(request.source.file_bytes)} bytes)"

        logger.info(f"Submitting {described} to model {request.model_id}")

        async with send(self._session, "POST", url, headers=headers, **body) as response:
            if not 200 <= response.status < 300:
                raise RequestRejected(response.status, await read_text(response))
            # CIMultiDictProxy: lookup ignores header casing
            location = response.headers.get(OPERATION_LOCATION_HEADER)

        result_id = parse_operation_location(location)
        if result_id:
            logger.info(f"Analysis accepted, result id {result_id}")
        else:
            logger.warning(
                f"Analysis accepted but no usable {OPERATION_LOCATION_HEADER} header "
                f"was returned ({strip_query(location)!r})"
            )
        return OperationHandle(result_id=result_id, operation_location=location)
