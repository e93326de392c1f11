"""
Farm operations REST client

Async httpx client for the entity, record, dashboard, report and sync
endpoints. Every response goes through one envelope check that maps failures
onto the exception taxonomy:

- no response at all                      -> ApiTransportError
- HTTP 5xx / 408 / 429, non-JSON envelope -> ApiUnavailableError
- other HTTP 4xx, or ``ok: false``         -> ApiRejectedError (server message kept)
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from farmdata.core.config import settings
from farmdata.core.exceptions import (
    ApiRejectedError,
    ApiTransportError,
    ApiUnavailableError,
)

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]

# Statuses that mean "try again later" rather than "no"
UNAVAILABLE_STATUSES = {408, 429}


class FarmApiClient:
    """Thin async wrapper over the farm REST API"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        prefix: Optional[str] = None,
        timeout: Optional[float] = None,
        token_provider: Optional[TokenProvider] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.API_BASE_URL).rstrip("/")
        self.prefix = settings.API_PREFIX if prefix is None else prefix
        self.timeout = timeout or settings.API_TIMEOUT_SECONDS
        self.token_provider = token_provider
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)

    async def __aenter__(self) -> "FarmApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, path: str) -> str:
        return f"{self.base_url}{self.prefix}{path}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = self._url(path)
        try:
            response = await self._client.request(
                method,
                url,
                params=dict(params or {}),
                json=json,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed before a response: {e}")
            raise ApiTransportError(f"Network error calling {path}: {e}") from e

        return self._unwrap(method, path, response)

    @staticmethod
    def _unwrap(method: str, path: str, response: httpx.Response) -> Dict[str, Any]:
        status = response.status_code
        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            if 400 <= status < 500 and status not in UNAVAILABLE_STATUSES:
                raise ApiRejectedError(f"{method} {path} was rejected", status_code=status)
            raise ApiUnavailableError(
                f"{method} {path} returned a malformed response",
                status_code=status,
            )

        message = body.get("message") or body.get("detail")
        if status >= 500 or status in UNAVAILABLE_STATUSES:
            raise ApiUnavailableError(message or f"{method} {path} is unavailable", status_code=status, payload=body)
        if status >= 400 or body.get("ok") is False:
            raise ApiRejectedError(message or f"{method} {path} was rejected", status_code=status, payload=body)

        return body

    # Entities and records

    async def get_entities(self, module_key: str) -> Dict[str, Any]:
        return await self._request("GET", "/entities", params={"module": module_key})

    async def get_records(self, module_key: str, table: str, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        query = {"module": module_key, "table": table}
        query.update(params or {})
        return await self._request("GET", "/records", params=query)

    async def create_record(self, module_key: str, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "POST", "/records", params={"module": module_key, "table": table}, json=values
        )

    async def update_record(self, module_key: str, table: str, record_id: Any, values: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request(
            "PUT", f"/records/{record_id}", params={"module": module_key, "table": table}, json=values
        )

    async def delete_record(self, module_key: str, table: str, record_id: Any) -> Dict[str, Any]:
        return await self._request(
            "DELETE", f"/records/{record_id}", params={"module": module_key, "table": table}
        )

    # Dashboards, reports, sync

    async def get_dashboard(self) -> Dict[str, Any]:
        return await self._request("GET", "/dashboard")

    async def get_report(self, name: str, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        return await self._request("GET", f"/reports/{name.strip('/')}", params=params)

    async def get_sync_status(self) -> Dict[str, Any]:
        return await self._request("GET", "/sync/status")
