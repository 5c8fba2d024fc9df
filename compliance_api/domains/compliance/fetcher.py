import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

import httpx

from compliance_api.domains.integrations.xero.token_refresher import TokenRefresher

from .types import (
    EndpointFailure,
    EndpointName,
    EndpointResult,
    EndpointSuccess,
    ReportPeriod,
)

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


@dataclass(frozen=True)
class XeroEndpoint:
    """A Xero accounting API resource and how to query it for a period."""

    name: EndpointName
    path: str
    params: Callable[[ReportPeriod], dict[str, str]]
    paged_key: Optional[str] = None


def _xero_date(value: date) -> str:
    return f"DateTime({value.year},{value.month},{value.day})"


def _range_params(period: ReportPeriod) -> dict[str, str]:
    return {
        "fromDate": period.from_date.isoformat(),
        "toDate": period.to_date.isoformat(),
    }


def _invoice_params(period: ReportPeriod) -> dict[str, str]:
    return {
        "where": (
            f"Date>={_xero_date(period.from_date)} AND "
            f"Date<={_xero_date(period.to_date)}"
        ),
        "order": "Date",
    }


DEFAULT_ENDPOINTS = (
    XeroEndpoint(
        EndpointName.TAX_SUMMARY,
        "Reports/AustralianBASReport",
        _range_params,
    ),
    XeroEndpoint(
        EndpointName.PROFIT_AND_LOSS,
        "Reports/ProfitAndLoss",
        _range_params,
    ),
    XeroEndpoint(
        EndpointName.BALANCE_SHEET,
        "Reports/BalanceSheet",
        lambda p: {"date": p.to_date.isoformat()},
    ),
    XeroEndpoint(
        EndpointName.INVOICES,
        "Invoices",
        _invoice_params,
        paged_key="Invoices",
    ),
    XeroEndpoint(
        EndpointName.CONTACTS,
        "Contacts",
        lambda p: {"order": "Name"},
        paged_key="Contacts",
    ),
)


class _EndpointError(Exception):
    def __init__(self, reason: str, status_code: Optional[int], retryable: bool):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code
        self.retryable = retryable


class ReportFetcher:
    """
    Fetches every report endpoint for a tenant and period.

    Endpoints run concurrently and fail independently; a failure becomes an
    EndpointFailure entry instead of aborting the other calls.
    """

    def __init__(
        self,
        refresher: TokenRefresher,
        base_url: str = "https://api.xero.com/api.xro/2.0",
        endpoint_timeout_seconds: float = 20.0,
        retry_backoff_seconds: float = 1.0,
        endpoints: tuple[XeroEndpoint, ...] = DEFAULT_ENDPOINTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.refresher = refresher
        self.base_url = base_url.rstrip("/")
        self.endpoint_timeout_seconds = endpoint_timeout_seconds
        self.retry_backoff_seconds = retry_backoff_seconds
        self.endpoints = endpoints
        self.transport = transport

    async def fetch(
        self,
        company_id: str,
        tenant_id: str,
        period: ReportPeriod,
        deadline_seconds: Optional[float] = None,
    ) -> dict[EndpointName, EndpointResult]:
        """
        Call each configured endpoint once.

        Args:
            company_id: Company ID used for token lookup
            tenant_id: Resolved Xero tenant
            period: Reporting period
            deadline_seconds: Overall budget; endpoints still running when it
                elapses are cancelled and reported as failures

        Returns:
            One result per configured endpoint

        Raises:
            ReauthorizationRequiredError, CredentialsMissingError,
            TokenRefreshTransientError: From the token refresh, before any call
        """
        access_token = await self.refresher.get_valid_access_token(company_id)
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Xero-Tenant-Id": tenant_id,
            "Accept": "application/json",
        }

        results: dict[EndpointName, EndpointResult] = {}
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.endpoint_timeout_seconds,
            transport=self.transport,
        ) as client:
            tasks = {
                asyncio.create_task(self._fetch_endpoint(client, endpoint, period)): (
                    endpoint.name
                )
                for endpoint in self.endpoints
            }
            if not tasks:
                return results

            try:
                done, pending = await asyncio.wait(tasks, timeout=deadline_seconds)
            finally:
                # Also reached when the caller is cancelled mid-wait
                unfinished = [t for t in tasks if not t.done()]
                for task in unfinished:
                    task.cancel()
                if unfinished:
                    await asyncio.gather(*unfinished, return_exceptions=True)

            if pending:
                logger.warning(
                    f"Report deadline of {deadline_seconds}s exceeded for company "
                    f"{company_id}; cancelled "
                    f"{sorted(tasks[t].value for t in pending)}"
                )

            for task, name in tasks.items():
                if task in done:
                    results[name] = task.result()
                else:
                    results[name] = EndpointFailure(
                        endpoint=name,
                        reason="cancelled: request deadline exceeded",
                        retryable=True,
                    )

        return results

    async def _fetch_endpoint(
        self, client: httpx.AsyncClient, endpoint: XeroEndpoint, period: ReportPeriod
    ) -> EndpointResult:
        try:
            if endpoint.paged_key:
                data = await self._get_all_pages(client, endpoint, period)
            else:
                data = await self._get_with_retry(
                    client, endpoint.path, endpoint.params(period)
                )
        except _EndpointError as e:
            logger.warning(f"Xero endpoint {endpoint.name.value} failed: {e.reason}")
            return EndpointFailure(
                endpoint=endpoint.name,
                reason=e.reason,
                status_code=e.status_code,
                retryable=e.retryable,
            )
        except Exception as e:
            logger.error(
                f"Unexpected error fetching Xero endpoint {endpoint.name.value}: {e}",
                exc_info=True,
            )
            return EndpointFailure(
                endpoint=endpoint.name, reason=f"unexpected error: {e}"
            )
        return EndpointSuccess(endpoint=endpoint.name, data=data)

    async def _get_all_pages(
        self, client: httpx.AsyncClient, endpoint: XeroEndpoint, period: ReportPeriod
    ) -> dict:
        key = endpoint.paged_key or ""
        items: list = []
        page = 1
        while True:
            params = {**endpoint.params(period), "page": str(page)}
            body = await self._get_with_retry(client, endpoint.path, params)
            page_items = body.get(key) or []
            items.extend(page_items)
            if len(page_items) < PAGE_SIZE:
                break
            page += 1
        return {key: items}

    async def _get_with_retry(
        self, client: httpx.AsyncClient, path: str, params: dict[str, str]
    ) -> dict:
        """GET with one retry on transient errors; 4xx responses are final."""
        for attempt in range(2):
            try:
                return await self._get(client, path, params)
            except _EndpointError as e:
                if not e.retryable or attempt == 1:
                    raise
                await asyncio.sleep(self.retry_backoff_seconds)
        raise _EndpointError("retries exhausted", None, True)

    async def _get(
        self, client: httpx.AsyncClient, path: str, params: dict[str, str]
    ) -> dict:
        try:
            response = await client.get(path, params=params)
        except httpx.TimeoutException:
            raise _EndpointError("timeout", None, True)
        except httpx.RequestError as e:
            raise _EndpointError(f"request error: {e}", None, True)

        if response.status_code >= 500 or response.status_code == 429:
            raise _EndpointError(
                f"HTTP {response.status_code}", response.status_code, True
            )
        if response.status_code >= 400:
            raise _EndpointError(
                f"HTTP {response.status_code}: {response.text[:200]}",
                response.status_code,
                False,
            )

        try:
            body = response.json()
        except ValueError:
            raise _EndpointError("response was not JSON", response.status_code, False)
        if not isinstance(body, dict):
            raise _EndpointError(
                "unexpected response shape", response.status_code, False
            )
        return body
