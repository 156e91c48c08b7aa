from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from dental_budget.core.exceptions import RecordValidationError, SyncError
from dental_budget.core.settings import Settings, settings as default_settings
from dental_budget.schemas.budget import BudgetCreate, BudgetItemStatusUpdate, BudgetOut, parse_budget
from dental_budget.services.catalog import ProcedureCatalog
from dental_budget.services.tooth_chart import ToothChart

logger = logging.getLogger(__name__)

PatientId = int | str


def build_client(
    config: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    config = config or default_settings
    headers = {"Accept": "application/json"}
    if config.store_token:
        headers["Authorization"] = f"Bearer {config.store_token}"
    return httpx.AsyncClient(
        base_url=config.store_base_url,
        timeout=config.store_timeout_seconds,
        headers=headers,
        transport=transport,
    )


async def _request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    step: str,
    **kwargs: Any,
) -> httpx.Response:
    try:
        response = await client.request(method, url, **kwargs)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        status_code = exc.response.status_code
        raise SyncError(
            f"{method} {url} failed with status {status_code}", step=step, status_code=status_code
        ) from exc
    except httpx.HTTPError as exc:
        raise SyncError(f"{method} {url} failed: {exc}", step=step) from exc
    return response


def _json(response: httpx.Response, step: str) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise SyncError(
            f"{response.request.method} {response.request.url} returned invalid JSON",
            step=step,
            status_code=response.status_code,
        ) from exc


def _page_content(data: Any) -> list[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, Mapping):
        content = data.get("content")
        if content is None:
            content = data.get("items")
        return list(content) if isinstance(content, list) else []
    return []


class ChartStore:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    @staticmethod
    def _path(patient_id: PatientId) -> str:
        return f"/patients/{patient_id}/odontogram"

    async def fetch(self, patient_id: PatientId) -> ToothChart:
        response = await _request(self.client, "GET", self._path(patient_id), step="chart")
        data = _json(response, "chart")
        if data is None:
            return ToothChart()
        if not isinstance(data, Mapping):
            raise SyncError("Chart store returned a non-object document", step="chart")
        return ToothChart.from_payload(data)

    async def replace(self, patient_id: PatientId, chart: ToothChart) -> None:
        payload = chart.to_payload()
        await _request(self.client, "PUT", self._path(patient_id), step="chart", json=payload)
        logger.info("Chart replaced", extra={"patient_id": patient_id, "teeth": len(payload)})


class BudgetStore:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self.client = client

    async def create(self, payload: BudgetCreate) -> BudgetOut | None:
        response = await _request(
            self.client,
            "POST",
            "/budgets",
            step="budget",
            json=payload.model_dump(by_alias=True, mode="json"),
        )
        data = _json(response, "budget")
        try:
            budget = parse_budget(data)
        except RecordValidationError:
            # Created server-side; only the echo is unusable.
            logger.warning("Budget created but response had no id", extra={"patient_id": payload.patient_id})
            return None
        logger.info(
            "Budget created",
            extra={"patient_id": payload.patient_id, "budget_id": budget.id, "items": len(payload.items)},
        )
        return budget

    async def update(self, budget_id: int | str, payload: BudgetCreate) -> BudgetOut | None:
        response = await _request(
            self.client,
            "PUT",
            f"/budgets/{budget_id}",
            step="budget",
            json=payload.model_dump(by_alias=True, mode="json"),
        )
        data = _json(response, "budget")
        logger.info("Budget replaced", extra={"budget_id": budget_id, "items": len(payload.items)})
        if data is None:
            return None
        try:
            return parse_budget(data)
        except RecordValidationError:
            return None

    async def get(self, budget_id: int | str) -> BudgetOut:
        response = await _request(self.client, "GET", f"/budgets/{budget_id}", step="budget")
        try:
            return parse_budget(_json(response, "budget"))
        except RecordValidationError as exc:
            raise SyncError(f"Budget {budget_id} payload unreadable: {exc}", step="budget") from exc

    async def list_for_patient(self, patient_id: PatientId) -> list[BudgetOut]:
        response = await _request(self.client, "GET", f"/patients/{patient_id}/budgets", step="budget")
        budgets: list[BudgetOut] = []
        for raw in _page_content(_json(response, "budget")):
            try:
                budgets.append(parse_budget(raw))
            except RecordValidationError:
                logger.warning("Budget without id skipped", extra={"patient_id": patient_id})
        budgets.sort(key=lambda b: b.created_at or "", reverse=True)
        return budgets

    async def delete_item(self, budget_id: int | str, item_id: int | str) -> None:
        await _request(
            self.client, "DELETE", f"/budgets/{budget_id}/items/{item_id}", step="budget_item"
        )
        logger.info("Budget item deleted", extra={"budget_id": budget_id, "item_id": item_id})

    async def set_item_fulfilled(self, budget_id: int | str, item_id: int | str, fulfilled: bool) -> None:
        body = BudgetItemStatusUpdate(fulfilled=fulfilled).model_dump(by_alias=True)
        await _request(
            self.client,
            "PATCH",
            f"/budgets/{budget_id}/items/{item_id}/status",
            step="budget_item",
            json=body,
        )


class ProcedureSource:
    def __init__(self, client: httpx.AsyncClient, config: Settings | None = None) -> None:
        self.client = client
        self.config = config or default_settings

    async def fetch_page(
        self,
        page: int,
        size: int,
        specialty: str | None = None,
    ) -> tuple[list[Any], bool]:
        params: dict[str, Any] = {"page": page, "size": size}
        if specialty:
            params["specialty"] = specialty
        response = await _request(self.client, "GET", "/procedures", step="catalog", params=params)
        data = _json(response, "catalog")
        items = _page_content(data)
        if not isinstance(data, Mapping):
            return items, True
        total_pages = data.get("totalPages")
        last = bool(data.get("last")) or (total_pages is not None and page + 1 >= int(total_pages))
        return items, last or not items

    async def list_all(
        self,
        specialty: str | None = None,
        max_pages: int | None = None,
        size: int | None = None,
    ) -> list[Any]:
        max_pages = max_pages or self.config.catalog_max_pages
        size = size or self.config.catalog_page_size
        collected: list[Any] = []
        for page in range(max_pages):
            items, last = await self.fetch_page(page, size, specialty)
            collected.extend(items)
            if last:
                break
        else:
            logger.warning("Catalog page limit reached", extra={"max_pages": max_pages, "loaded": len(collected)})
        return collected

    async def load_catalog(self, specialty: str | None = None) -> ProcedureCatalog:
        catalog = ProcedureCatalog.from_payloads(await self.list_all(specialty=specialty))
        if not len(catalog):
            logger.warning("Procedure catalog is empty")
        return catalog
