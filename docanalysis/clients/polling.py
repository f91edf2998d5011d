import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import aiohttp

from docanalysis.clients.http import auth_headers, read_json, read_text, result_url, send
from docanalysis.clients.submission import validate_model_id
from docanalysis.models.schemas import AnalysisResult, AnalysisStatus, WaitPolicy
from docanalysis.utils.credentials import Credentials
from docanalysis.utils.errors import InvalidInput, InvalidResponse, RequestRejected

logger = logging.getLogger(__name__)


class PollingClient:
    """Fetches analyzeResults until a terminal status or the wait budget.

    Fetches run strictly one after another. Waiting between them goes
    through ``sleep`` (``asyncio.sleep`` by default) so cancelling the
    surrounding task stops the loop at the next await.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session = session
        self._sleep = sleep
        self._clock = clock

    async def fetch_status(
        self,
        model_id: str,
        result_id: str,
        credentials: Credentials,
        api_version: str,
    ) -> AnalysisResult:
        url = result_url(credentials, model_id, result_id, api_version)

        async with send(self._session, "GET", url, headers=auth_headers(credentials)) as response:
            if response.status == 404:
                body = await read_text(response)
                logger.warning(f"Analysis result {result_id} not found for model {model_id}")
                return AnalysisResult(
                    status=AnalysisStatus.NOT_FOUND,
                    model_id=model_id,
                    result_id=result_id,
                    message=(
                        f"No analysis result {result_id} for model {model_id}. "
                        f"It may have expired or the id is wrong."
                        + (f" Service said: {body[:300]}" if body else "")
                    ),
                )
            if not 200 <= response.status < 300:
                raise RequestRejected(response.status, await read_text(response))
            payload = await read_json(response)

        if not isinstance(payload, dict):
            raise InvalidResponse("analyzeResults body is not a JSON object")

        status = AnalysisStatus.from_service(payload.get("status"))
        message = None
        if status == AnalysisStatus.FAILED:
            error = payload.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else str(error)

        return AnalysisResult(
            status=status,
            raw_payload=payload,
            model_id=model_id,
            result_id=result_id,
            message=message,
        )

    async def wait_for_result(
        self,
        model_id: str,
        result_id: str,
        credentials: Credentials,
        api_version: str,
        wait_policy: Optional[WaitPolicy] = None,
    ) -> AnalysisResult:
        validate_model_id(model_id)
        if not result_id or not result_id.strip():
            raise InvalidInput("A result id is required to poll for an analysis")

        policy = wait_policy or WaitPolicy()
        started = None
        attempt = 0

        while True:
            attempt += 1
            if started is None:
                started = self._clock()
            result = await self.fetch_status(model_id, result_id, credentials, api_version)
            logger.info(f"Poll #{attempt} for {result_id}: {result.status.value}")

            if result.is_terminal or not policy.enabled:
                return result

            elapsed = self._clock() - started
            if elapsed > policy.max_wait_seconds:
                logger.warning(
                    f"Stopped waiting for {result_id} after {elapsed:.1f}s "
                    f"(budget {policy.max_wait_seconds}s), last status {result.status.value}"
                )
                return result.model_copy(update={
                    "budget_exhausted": True,
                    "message": f"Wait budget of {policy.max_wait_seconds}s exhausted; "
                               f"analysis still {result.status.value}",
                })

            await self._sleep(policy.poll_interval_seconds)
