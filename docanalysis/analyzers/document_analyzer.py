import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import aiohttp
from pydantic import ValidationError

from docanalysis.clients.http import create_session
from docanalysis.clients.polling import PollingClient
from docanalysis.clients.submission import SubmissionClient
from docanalysis.models.schemas import AnalysisRequest, AnalysisResult, OperationHandle, WaitPolicy
from docanalysis.utils.cache import ResultCache
from docanalysis.utils.config import Settings
from docanalysis.utils.credentials import CredentialStore, Credentials, resolve_credentials
from docanalysis.utils.errors import InvalidInput, WaitBudgetExhausted

logger = logging.getLogger(__name__)

BatchOutcome = Union[AnalysisResult, None, Exception]


class DocumentAnalyzer:
    """Submit + poll workflow against the document analysis service.

    Owns one aiohttp session for its lifetime unless a session is passed in.
    Credentials come from the explicit ``store``; nothing here reads the
    process environment.
    """

    def __init__(
        self,
        store: CredentialStore,
        settings: Settings,
        session: Optional[aiohttp.ClientSession] = None,
        cache: Optional[ResultCache] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.settings = settings
        self.cache = cache
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep
        self._clock = clock
        self._submission: Optional[SubmissionClient] = None
        self._polling: Optional[PollingClient] = None

    async def open(self) -> "DocumentAnalyzer":
        self._ensure_open()
        return self

    async def __aenter__(self) -> "DocumentAnalyzer":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _ensure_open(self):
        if self._session is None:
            self._session = create_session(self.settings)
            self._owns_session = True
        if self._submission is None:
            self._submission = SubmissionClient(self._session)
            self._polling = PollingClient(self._session, sleep=self._sleep, clock=self._clock)

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None
        self._submission = None
        self._polling = None

    def resolve(self, key: Optional[str] = None, endpoint: Optional[str] = None) -> Credentials:
        return resolve_credentials(key, endpoint, self.store)

    def wait_policy(
        self,
        enabled: bool = True,
        poll_interval: Optional[float] = None,
        max_wait: Optional[float] = None,
    ) -> WaitPolicy:
        try:
            return WaitPolicy(
                enabled=enabled,
                poll_interval_seconds=self.settings.poll_interval if poll_interval is None else poll_interval,
                max_wait_seconds=self.settings.max_wait if max_wait is None else max_wait,
            )
        except ValidationError as e:
            raise InvalidInput("Poll interval and max wait must be greater than 0") from e

    async def submit(
        self,
        request: AnalysisRequest,
        credentials: Optional[Credentials] = None,
        api_version: Optional[str] = None,
    ) -> OperationHandle:
        self._ensure_open()
        return await self._submission.submit(
            request,
            credentials or self.resolve(),
            api_version or self.settings.api_version,
        )

    async def wait_for_result(
        self,
        model_id: str,
        result_id: str,
        credentials: Optional[Credentials] = None,
        api_version: Optional[str] = None,
        wait_policy: Optional[WaitPolicy] = None,
    ) -> AnalysisResult:
        self._ensure_open()
        credentials = credentials or self.resolve()

        if self.cache:
            cached = await self.cache.get(model_id, result_id)
            if cached:
                logger.info(f"Cache hit for analysis {result_id}")
                return cached

        result = await self._polling.wait_for_result(
            model_id,
            result_id,
            credentials,
            api_version or self.settings.api_version,
            wait_policy or self.wait_policy(),
        )

        if self.cache:
            await self.cache.set(result)
        return result

    async def analyze(
        self,
        request: AnalysisRequest,
        credentials: Optional[Credentials] = None,
        api_version: Optional[str] = None,
        wait_policy: Optional[WaitPolicy] = None,
        strict: bool = False,
    ) -> Optional[AnalysisResult]:
        """Submit a document and wait for its result.

        Returns ``None`` when the service accepted the document without a
        usable operation handle. With ``strict`` an exhausted wait budget
        raises :class:`WaitBudgetExhausted` instead of returning.
        """
        start_time = datetime.now()
        try:
            credentials = credentials or self.resolve()
            handle = await self.submit(request, credentials, api_version)
            if not handle.is_usable:
                logger.warning(
                    f"⚠️ No result id for the {request.model_id} submission; "
                    f"nothing to poll. Submit again to retry."
                )
                return None

            result = await self.wait_for_result(
                request.model_id,
                handle.result_id,
                credentials,
                api_version,
                wait_policy,
            )
        except Exception as e:
            logger.error(f"❌ Analysis with model {request.model_id} failed: {e}", exc_info=True)
            raise

        processing_time = (datetime.now() - start_time).total_seconds()
        logger.info(
            f"Analysis {result.result_id} finished as {result.status.value} in {processing_time:.1f}s"
        )
        if strict and result.budget_exhausted:
            raise WaitBudgetExhausted(result)
        return result

    async def analyze_batch(
        self,
        requests: Sequence[AnalysisRequest],
        credentials: Optional[Credentials] = None,
        api_version: Optional[str] = None,
        wait_policy: Optional[WaitPolicy] = None,
    ) -> List[BatchOutcome]:
        """Run independent submit+poll units concurrently, in input order.

        A failing document yields its exception in place of a result.
        """
        credentials = credentials or self.resolve()
        semaphore = asyncio.Semaphore(self.settings.max_batch_size)

        async def run_one(request: AnalysisRequest) -> Optional[AnalysisResult]:
            async with semaphore:
                return await self.analyze(request, credentials, api_version, wait_policy)

        return await asyncio.gather(
            *(run_one(request) for request in requests),
            return_exceptions=True,
        )

    async def health_check(self) -> Dict[str, Any]:
        cache_status = "disabled"
        if self.cache:
            cache_status = "connected" if await self.cache.health_check() else "disconnected"
        return {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "components": {
                "credentials": "configured" if self.store.key and self.store.endpoint else "missing",
                "http_session": "open" if self._session is not None and not self._session.closed else "closed",
                "cache": cache_status,
            },
            "api_version": self.settings.api_version,
        }
