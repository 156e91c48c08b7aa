import asyncio
import itertools
import math

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI, HTTPException, Request, Response

from dental_budget.core.settings import Settings
from dental_budget.services.stores import BudgetStore, ChartStore, ProcedureSource, build_client

PROCEDURES = [
    {"id": 1, "nome": "Restauração resina", "especialidade": "Dentística", "preco": 200.0, "ativo": True},
    {"id": 2, "nome": "Clareamento", "especialidade": "Dentística", "preco": "850,00"},
    {"id": 3, "nome": "Tratamento de canal", "especialidade": "Endodontia", "preco": 900},
    {"id": 4, "nome": "Amálgama", "especialidade": "dentística ", "preco": 120, "ativo": False},
    {"id": 5, "name": "Limpeza", "specialty": "Periodontia", "price": 150},
    {"nome": "Sem id", "especialidade": "Dentística", "preco": 10},
]


class FakeStores:
    def __init__(self, procedures=None):
        self.charts = {}
        self.budgets = {}
        self.procedures = list(PROCEDURES if procedures is None else procedures)
        self.calls = []
        self.fail = set()
        self.delete_gate = None
        self.delete_started = asyncio.Event()
        self.echo_budget_id = True
        self._budget_ids = itertools.count(100)
        self._item_ids = itertools.count(1000)

    def count(self, method, prefix=""):
        return sum(1 for m, path in self.calls if m == method and path.startswith(prefix))

    def _check(self, step):
        if step in self.fail:
            raise HTTPException(status_code=503, detail=f"{step} unavailable")

    def _store_budget(self, budget_id, body):
        items = []
        for raw in body.get("items", []):
            item = dict(raw)
            item["id"] = next(self._item_ids)
            item["fulfilled"] = False
            items.append(item)
        budget = {
            "id": budget_id,
            "patientId": body.get("patientId"),
            "notes": body.get("notes"),
            "status": "DRAFT",
            "createdAt": f"2026-10-{len(self.budgets) + 1:02d}T10:00:00",
            "items": items,
        }
        self.budgets[budget_id] = budget
        return budget


def build_app(fake):
    app = FastAPI()

    @app.get("/patients/{patient_id}/odontogram")
    async def get_chart(patient_id: str):
        fake.calls.append(("GET", f"/patients/{patient_id}/odontogram"))
        fake._check("chart_get")
        return fake.charts.get(patient_id, {})

    @app.put("/patients/{patient_id}/odontogram")
    async def put_chart(patient_id: str, request: Request):
        fake.calls.append(("PUT", f"/patients/{patient_id}/odontogram"))
        fake._check("chart")
        fake.charts[patient_id] = await request.json()
        return Response(status_code=204)

    @app.post("/budgets")
    async def create_budget(request: Request):
        fake.calls.append(("POST", "/budgets"))
        fake._check("budget")
        budget = fake._store_budget(next(fake._budget_ids), await request.json())
        if not fake.echo_budget_id:
            return {"ok": True}
        return budget

    @app.put("/budgets/{budget_id}")
    async def update_budget(budget_id: int, request: Request):
        fake.calls.append(("PUT", f"/budgets/{budget_id}"))
        fake._check("budget")
        if budget_id not in fake.budgets:
            raise HTTPException(status_code=404)
        return fake._store_budget(budget_id, await request.json())

    @app.get("/budgets/{budget_id}")
    async def get_budget(budget_id: int):
        fake.calls.append(("GET", f"/budgets/{budget_id}"))
        if budget_id not in fake.budgets:
            raise HTTPException(status_code=404)
        return fake.budgets[budget_id]

    @app.get("/patients/{patient_id}/budgets")
    async def list_budgets(patient_id: str):
        fake.calls.append(("GET", f"/patients/{patient_id}/budgets"))
        return [b for b in fake.budgets.values() if str(b["patientId"]) == patient_id]

    @app.delete("/budgets/{budget_id}/items/{item_id}")
    async def delete_item(budget_id: int, item_id: int):
        fake.calls.append(("DELETE", f"/budgets/{budget_id}/items/{item_id}"))
        fake.delete_started.set()
        if fake.delete_gate is not None:
            await fake.delete_gate.wait()
        fake._check("budget_item")
        budget = fake.budgets.get(budget_id)
        if budget is None:
            raise HTTPException(status_code=404)
        budget["items"] = [item for item in budget["items"] if item["id"] != item_id]
        return Response(status_code=204)

    @app.patch("/budgets/{budget_id}/items/{item_id}/status")
    async def set_item_status(budget_id: int, item_id: int, request: Request):
        fake.calls.append(("PATCH", f"/budgets/{budget_id}/items/{item_id}/status"))
        body = await request.json()
        for item in fake.budgets[budget_id]["items"]:
            if item["id"] == item_id:
                item["fulfilled"] = body["fulfilled"]
                return item
        raise HTTPException(status_code=404)

    @app.get("/procedures")
    async def list_procedures(page: int = 0, size: int = 20, specialty: str | None = None):
        fake.calls.append(("GET", "/procedures"))
        fake._check("catalog")
        items = fake.procedures
        if specialty:
            items = [p for p in items if p.get("especialidade", p.get("specialty")) == specialty]
        total_pages = max(1, math.ceil(len(items) / size))
        content = items[page * size:(page + 1) * size]
        return {
            "content": content,
            "number": page,
            "totalPages": total_pages,
            "last": page + 1 >= total_pages,
        }

    return app


@pytest.fixture
def fake_stores():
    return FakeStores()


@pytest.fixture
def store_settings():
    return Settings(
        store_base_url="http://stores.test/",
        catalog_page_size=2,
        catalog_max_pages=10,
    )


@pytest_asyncio.fixture
async def store_client(fake_stores, store_settings):
    transport = httpx.ASGITransport(app=build_app(fake_stores))
    async with build_client(store_settings, transport=transport) as client:
        yield client


@pytest.fixture
def chart_store(store_client):
    return ChartStore(store_client)


@pytest.fixture
def budget_store(store_client):
    return BudgetStore(store_client)


@pytest.fixture
def procedure_source(store_client, store_settings):
    return ProcedureSource(store_client, config=store_settings)
