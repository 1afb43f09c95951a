import asyncio
import base64
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from prometheus_client import Counter, Histogram
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_incrementing

from config.logging_config import APIRetryLogger, get_logger, log_external_api_call
from services.site_audit_service.config import Settings, settings as default_settings
from services.site_audit_service.errors import TransportError, VendorError
from services.site_audit_service.integrations.response_cache import ResponseCache, build_cache_key

logger = get_logger(__name__)
retry_logger = APIRetryLogger()

API_NAME = "dataforseo"

vendor_requests_total = Counter(
    'site_audit_vendor_requests_total',
    'Total requests sent to the DataForSEO API',
    ['method', 'outcome']
)

vendor_request_duration = Histogram(
    'site_audit_vendor_request_duration_seconds',
    'Duration of single DataForSEO API attempts'
)

vendor_retries_total = Counter(
    'site_audit_vendor_retries_total',
    'Retries issued against the DataForSEO API'
)


def is_success_code(status_code: Any) -> bool:
    return isinstance(status_code, int) and 20000 <= status_code < 30000


def first_task(envelope: Dict[str, Any]) -> Dict[str, Any]:
    tasks = envelope.get("tasks") or []
    if not tasks:
        raise VendorError("response contains no tasks", envelope.get("status_code"))
    return tasks[0] or {}


def task_result(envelope: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Return ``tasks[0].result`` after checking the task-level status."""
    task = first_task(envelope)
    if not is_success_code(task.get("status_code")):
        raise VendorError(task.get("status_message") or "Unknown error", task.get("status_code"))
    return [item for item in (task.get("result") or []) if item is not None]


class DataForSEOClient:
    """Authenticated client for the DataForSEO OnPage API.

    Every attempt is bounded by ``timeout`` seconds. Transport failures and
    vendor error statuses are retried in place up to ``max_retries`` times,
    waiting ``retry_base_delay * n`` before retry ``n``; once exhausted the
    last error is raised. Successful GET responses are cached; POST calls
    never touch the cache.
    """

    def __init__(
        self,
        login: str,
        password: str,
        base_url: str = "https://api.dataforseo.com/v3",
        cache: Optional[ResponseCache] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_base_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if not login or not password:
            logger.warning("DataForSEO credentials are missing; requests will be rejected by the vendor")

        self.base_url = base_url.rstrip("/")
        self.cache = cache
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._authorization = "Basic " + base64.b64encode(f"{login}:{password}".encode()).decode()

    @classmethod
    def from_settings(cls, config: Settings = default_settings, cache: Optional[ResponseCache] = None) -> "DataForSEOClient":
        if cache is None:
            cache = ResponseCache(default_ttl=config.cache_ttl_seconds, max_size=config.cache_max_size)
        return cls(
            login=config.vendor_login,
            password=config.vendor_password,
            base_url=config.vendor_base_url,
            cache=cache,
            timeout=config.request_timeout_s,
            max_retries=config.max_retries,
            retry_base_delay=config.retry_base_delay_s,
        )

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Any] = None,
        fresh: bool = False,
    ) -> Dict[str, Any]:
        """Send one logical request. ``fresh`` skips the cache read but still refreshes the entry."""
        method = method.upper()

        if method != "GET":
            return await self._request_with_retries(method, endpoint, params, body)

        cache_key = build_cache_key(method, endpoint, params)
        if self.cache is not None and not fresh:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        response = await self._request_with_retries(method, endpoint, params, body)

        if self.cache is not None:
            self.cache.set(cache_key, response)

        return response

    async def _request_with_retries(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]],
        body: Optional[Any],
    ) -> Dict[str, Any]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_incrementing(start=self.retry_base_delay, increment=self.retry_base_delay),
            retry=retry_if_exception_type((TransportError, VendorError)),
            before_sleep=self._before_retry,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            return await retrying(self._send, method, endpoint, params, body)
        except (TransportError, VendorError) as e:
            retry_logger.log_max_retries_exceeded(f"{API_NAME} {method} {endpoint}", self.max_retries + 1, e)
            raise

    def _before_retry(self, retry_state: RetryCallState) -> None:
        vendor_retries_total.inc()
        method, endpoint = retry_state.args[0], retry_state.args[1]
        retry_logger.log_retry_attempt(
            f"{API_NAME} {method} {endpoint}",
            retry_state.attempt_number,
            self.max_retries,
            retry_state.next_action.sleep if retry_state.next_action else 0,
            retry_state.outcome.exception() if retry_state.outcome else None,
        )

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]],
        body: Optional[Any],
    ) -> Dict[str, Any]:
        headers = {
            "Authorization": self._authorization,
            "Content-Type": "application/json",
        }
        started = time.perf_counter()
        status_code = None

        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                with vendor_request_duration.time():
                    response = await asyncio.wait_for(
                        client.request(
                            method,
                            f"{self.base_url}{endpoint}",
                            params=params,
                            json=body,
                            headers=headers,
                        ),
                        timeout=self.timeout,
                    )
            status_code = response.status_code
            envelope = self._parse_envelope(response)

        except asyncio.TimeoutError as e:
            error = TransportError(f"DataForSEO request timed out after {self.timeout}s: {method} {endpoint}")
            self._record_failure(method, endpoint, started, status_code, error)
            raise error from e

        except httpx.TimeoutException as e:
            error = TransportError(f"DataForSEO request timed out: {method} {endpoint}: {e}")
            self._record_failure(method, endpoint, started, status_code, error)
            raise error from e

        except httpx.HTTPError as e:
            error = TransportError(f"DataForSEO request failed: {method} {endpoint}: {e}")
            self._record_failure(method, endpoint, started, status_code, error)
            raise error from e

        except VendorError as e:
            self._record_failure(method, endpoint, started, status_code, e)
            raise

        vendor_requests_total.labels(method=method, outcome='success').inc()
        log_external_api_call(logger, API_NAME, endpoint, time.perf_counter() - started, envelope.get("status_code"))
        return envelope

    @staticmethod
    def _parse_envelope(response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            if isinstance(payload, dict):
                raise VendorError(
                    payload.get("status_message") or response.reason_phrase,
                    payload.get("status_code") or response.status_code,
                )
            raise VendorError(response.text[:500] or response.reason_phrase, response.status_code)

        if not isinstance(payload, dict):
            raise VendorError("response body is not a JSON object", response.status_code)

        if not is_success_code(payload.get("status_code")):
            raise VendorError(payload.get("status_message") or "Unknown error", payload.get("status_code"))

        return payload

    def _record_failure(self, method, endpoint, started, status_code, error) -> None:
        outcome = 'timeout' if 'timed out' in str(error) else 'error'
        vendor_requests_total.labels(method=method, outcome=outcome).inc()
        log_external_api_call(logger, API_NAME, endpoint, time.perf_counter() - started, status_code, error=error)

    async def post_onpage_task(self, task: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("POST", "/on_page/task_post", body=[task])

    async def get_tasks_ready(self) -> Dict[str, Any]:
        return await self.request("GET", "/on_page/tasks_ready")

    async def get_summary(self, vendor_task_id: str, fresh: bool = False) -> Dict[str, Any]:
        return await self.request("GET", f"/on_page/summary/{vendor_task_id}", fresh=fresh)

    async def get_pages(self, vendor_task_id: str, limit: int = 100, offset: int = 0) -> Dict[str, Any]:
        return await self.request("GET", f"/on_page/pages/{vendor_task_id}", params={"limit": limit, "offset": offset})

    async def get_resources(self, vendor_task_id: str, limit: int = 100, offset: int = 0) -> Dict[str, Any]:
        return await self.request("GET", f"/on_page/resources/{vendor_task_id}", params={"limit": limit, "offset": offset})

    async def get_duplicate_tags(self, vendor_task_id: str, limit: int = 100, offset: int = 0) -> Dict[str, Any]:
        return await self.request("GET", f"/on_page/duplicate_tags/{vendor_task_id}", params={"limit": limit, "offset": offset})

    async def get_duplicate_content(self, vendor_task_id: str, url: str, limit: int = 100, offset: int = 0) -> Dict[str, Any]:
        return await self.request(
            "GET",
            f"/on_page/duplicate_content/{vendor_task_id}",
            params={"url": url, "limit": limit, "offset": offset},
        )

    async def get_links(self, vendor_task_id: str, limit: int = 100, offset: int = 0) -> Dict[str, Any]:
        return await self.request("GET", f"/on_page/links/{vendor_task_id}", params={"limit": limit, "offset": offset})

    async def get_non_indexable(self, vendor_task_id: str, limit: int = 100, offset: int = 0) -> Dict[str, Any]:
        return await self.request("GET", f"/on_page/non_indexable/{vendor_task_id}", params={"limit": limit, "offset": offset})

    async def get_raw_html(self, vendor_task_id: str, url: str) -> Dict[str, Any]:
        return await self.request("GET", f"/on_page/raw_html/{vendor_task_id}", params={"url": url})

    async def get_security(self, vendor_task_id: str) -> Dict[str, Any]:
        return await self.request("GET", f"/on_page/security/{vendor_task_id}")

    async def force_stop_task(self, vendor_task_id: str) -> Dict[str, Any]:
        return await self.request("POST", "/on_page/task_force_stop", body=[{"id": vendor_task_id}])

    async def get_instant_pages(self, url: str, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.request("POST", "/on_page/instant_pages", body=[{"url": url, **(options or {})}])
