from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from dental_budget.core.exceptions import RecordValidationError
from dental_budget.schemas.wire import clean_text, coerce_bool, first_present
from dental_budget.services.money import parse_amount
from dental_budget.services.pricing import line_total_cents, parse_percent


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BudgetItemIn(_CamelModel):
    tooth_id: Optional[int] = None
    procedure_id: int | str
    procedure_name: str
    specialty: Optional[str] = None
    quantity: int = Field(default=1, ge=1)
    discount_percent: float = Field(default=0, ge=0, le=100)
    unit_price: float = Field(gt=0)


class BudgetCreate(_CamelModel):
    patient_id: int | str
    notes: Optional[str] = None
    items: list[BudgetItemIn]


class BudgetItemStatusUpdate(_CamelModel):
    fulfilled: bool


class BudgetItemOut(BaseModel):
    id: Optional[int | str] = None
    tooth_id: Optional[int] = None
    procedure_id: Optional[str] = None
    procedure_name: str = ""
    specialty: Optional[str] = None
    quantity: int = 1
    unit_price_cents: int = 0
    discount_percent: Decimal = Decimal(0)
    total_cents: int = 0
    fulfilled: bool = False


class BudgetOut(BaseModel):
    id: int | str
    patient_id: Optional[int | str] = None
    status: str = "DRAFT"
    notes: Optional[str] = None
    created_at: Optional[str] = None
    total_cents: int = 0
    items: list[BudgetItemOut] = Field(default_factory=list)


def _parse_tooth(value: Any) -> int | None:
    text = clean_text(value)
    return int(text) if text and text.isdigit() else None


def parse_budget_item(raw: Mapping[str, Any]) -> BudgetItemOut:
    quantity = int(first_present(raw, "quantity", "quantidade") or 1)
    unit_cents = parse_amount(
        first_present(raw, "unitPrice", "precoUnit", "precoUnitario", "valorUnitario")
    )
    discount = parse_percent(str(first_present(raw, "discountPercent", "descontoPercent") or 0))
    total = first_present(raw, "total", "totalItem", "valorTotal")
    total_cents = (
        parse_amount(total) if total is not None else line_total_cents(unit_cents, quantity, discount)
    )
    procedure_id = first_present(raw, "procedureId", "procedimentoId")
    return BudgetItemOut(
        id=first_present(raw, "id", "itemId"),
        tooth_id=_parse_tooth(first_present(raw, "toothId", "dente", "toothNumber", "tooth")),
        procedure_id=str(procedure_id) if procedure_id is not None else None,
        procedure_name=clean_text(
            first_present(raw, "procedureName", "nomeProcedimento", "procedimentoNome")
        )
        or "",
        specialty=clean_text(first_present(raw, "specialty", "categoria", "especialidade")),
        quantity=quantity,
        unit_price_cents=unit_cents,
        discount_percent=discount,
        total_cents=total_cents,
        fulfilled=coerce_bool(first_present(raw, "fulfilled", "realizado")),
    )


def parse_budget(raw: Mapping[str, Any] | None) -> BudgetOut:
    if not raw or first_present(raw, "id") is None:
        raise RecordValidationError("Budget payload has no id", missing=("id",))
    raw_items = first_present(raw, "items", "itens") or []
    items = [parse_budget_item(item) for item in raw_items if isinstance(item, Mapping)]
    total = first_present(raw, "total", "valorTotal")
    return BudgetOut(
        id=raw["id"],
        patient_id=first_present(raw, "patientId", "pacienteId"),
        status=str(first_present(raw, "status") or "DRAFT"),
        notes=first_present(raw, "notes", "observacoes"),
        created_at=first_present(raw, "createdAt", "criadoEm", "dataEmissao"),
        total_cents=parse_amount(total) if total is not None else sum(i.total_cents for i in items),
        items=items,
    )
