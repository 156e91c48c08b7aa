from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Callable, Iterator, Protocol

from dental_budget.core.exceptions import RecordValidationError
from dental_budget.schemas.budget import BudgetOut
from dental_budget.schemas.odontogram import ChartCategory, category_for, parse_category
from dental_budget.schemas.procedure import Procedure
from dental_budget.schemas.wire import clean_text
from dental_budget.services.dentition import parse_tooth_id
from dental_budget.services.pricing import MIN_PRICE_CENTS, apply_floor, clamp_percent, line_total_cents
from dental_budget.services.tooth_chart import ToothChart

logger = logging.getLogger(__name__)


class BudgetItemDeleter(Protocol):
    async def delete_item(self, budget_id: int | str, item_id: int | str) -> None:
        raise NotImplementedError


def new_record_id() -> str:
    return uuid.uuid4().hex


@dataclass
class RecordDraft:
    tooth_id: int | str | None = None
    status: ChartCategory | str | None = None
    specialty: str | None = None
    procedure_id: str | int | None = None
    procedure_name: str = ""
    unit_price_cents: int = 0
    notes: str = ""
    quantity: int = 1
    discount_percent: Decimal | int | str = 0


@dataclass(frozen=True)
class TreatmentRecord:
    record_id: str
    tooth_id: int | None
    status: ChartCategory
    specialty: str | None
    procedure_id: str | None
    procedure_name: str
    unit_price_cents: int
    notes: str = ""
    quantity: int = 1
    discount_percent: Decimal = Decimal(0)
    item_id: int | str | None = None

    @property
    def is_general(self) -> bool:
        return self.tooth_id is None

    @property
    def is_persisted(self) -> bool:
        return self.item_id is not None

    @property
    def gross_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    @property
    def total_cents(self) -> int:
        return line_total_cents(self.unit_price_cents, self.quantity, self.discount_percent)


def missing_fields(draft: RecordDraft, require_specialty: bool = True) -> list[str]:
    missing = []
    if not draft.status:
        missing.append("status")
    if require_specialty and not clean_text(draft.specialty):
        missing.append("specialty")
    if clean_text(draft.procedure_id) is None:
        missing.append("procedure_id")
    return missing


class BudgetAssembler:
    """Ordered treatment records of one budget in progress.

    Records are never deduplicated by tooth. Records carrying an ``item_id`` were
    loaded from a persisted budget and are deleted remotely before local removal.
    """

    def __init__(
        self,
        budget_store: BudgetItemDeleter | None = None,
        budget_id: int | str | None = None,
    ) -> None:
        self.budget_store = budget_store
        self.budget_id = budget_id
        self._records: list[TreatmentRecord] = []
        self._pending_removals: set[str] = set()

    @property
    def records(self) -> tuple[TreatmentRecord, ...]:
        return tuple(self._records)

    def add_record(self, draft: RecordDraft) -> str:
        return self._append(draft, require_specialty=True)

    def _append(self, draft: RecordDraft, require_specialty: bool) -> str:
        tooth_id = parse_tooth_id(draft.tooth_id) if draft.tooth_id not in (None, "") else None
        missing = missing_fields(draft, require_specialty)
        if missing:
            raise RecordValidationError(
                f"Record is missing {', '.join(missing)}",
                missing=missing,
                tooth_ids=(tooth_id,),
            )
        try:
            status = parse_category(draft.status)
        except RecordValidationError as exc:
            raise RecordValidationError(
                f"Unknown status: {draft.status!r}", missing=("status",), tooth_ids=(tooth_id,)
            ) from exc
        quantity = int(draft.quantity)
        if quantity < 1:
            raise RecordValidationError("Quantity must be at least 1", missing=("quantity",), tooth_ids=(tooth_id,))
        record = TreatmentRecord(
            record_id=new_record_id(),
            tooth_id=tooth_id,
            status=status,
            specialty=clean_text(draft.specialty),
            procedure_id=clean_text(draft.procedure_id),
            procedure_name=(draft.procedure_name or "").strip(),
            unit_price_cents=apply_floor(draft.unit_price_cents),
            notes=draft.notes or "",
            quantity=quantity,
            discount_percent=clamp_percent(draft.discount_percent),
        )
        self._records.append(record)
        logger.info(
            "Treatment record added",
            extra={"record_id": record.record_id, "tooth_id": tooth_id, "procedure_id": record.procedure_id},
        )
        return record.record_id

    def add_catalog_item(self, procedure: Procedure) -> str:
        for record in self._records:
            if record.is_general and not record.is_persisted and record.procedure_id == procedure.id:
                self.update_record(record.record_id, quantity=record.quantity + 1)
                return record.record_id
        # Catalog lines may come from procedures without a specialty.
        return self._append(
            RecordDraft(
                status=ChartCategory.sound,
                specialty=procedure.specialty,
                procedure_id=procedure.id,
                procedure_name=procedure.name,
                unit_price_cents=procedure.price_cents,
            ),
            require_specialty=False,
        )

    def update_record(
        self,
        record_id: str,
        *,
        quantity: int | None = None,
        discount_percent: Decimal | int | str | None = None,
        unit_price_cents: int | None = None,
    ) -> TreatmentRecord:
        index = self._index_of(record_id)
        if index is None:
            raise KeyError(record_id)
        record = self._records[index]
        if quantity is not None and int(quantity) < 1:
            raise RecordValidationError("Quantity must be at least 1", missing=("quantity",), tooth_ids=(record.tooth_id,))
        updated = replace(
            record,
            quantity=int(quantity) if quantity is not None else record.quantity,
            discount_percent=clamp_percent(discount_percent) if discount_percent is not None else record.discount_percent,
            unit_price_cents=apply_floor(unit_price_cents) if unit_price_cents is not None else record.unit_price_cents,
        )
        self._records[index] = updated
        return updated

    def link_missing_procedures(self, resolve: Callable[[str, str | None], Procedure | None]) -> int:
        linked = 0
        for index, record in enumerate(self._records):
            if record.procedure_id or not record.procedure_name:
                continue
            procedure = resolve(record.procedure_name, record.specialty)
            if procedure is None:
                continue
            self._records[index] = replace(
                record,
                procedure_id=procedure.id,
                unit_price_cents=(
                    record.unit_price_cents
                    if record.unit_price_cents > MIN_PRICE_CENTS
                    else apply_floor(procedure.price_cents)
                ),
            )
            linked += 1
        if linked:
            logger.info("Procedure ids linked by name", extra={"linked": linked})
        return linked

    def get(self, record_id: str) -> TreatmentRecord | None:
        index = self._index_of(record_id)
        return self._records[index] if index is not None else None

    def load_budget(self, budget: BudgetOut, chart: ToothChart) -> None:
        """Hydrate records from a persisted budget for editing.

        Budget items carry no clinical state, so each tooth record takes its status
        and notes from ``chart``; finalizing an unchanged budget leaves the chart as is.
        """
        records = []
        for item in budget.items:
            status = ChartCategory.sound
            notes = ""
            if item.tooth_id is not None and item.tooth_id in chart:
                annotation = chart.get(item.tooth_id)
                status = category_for(annotation.status)
                notes = annotation.notes or ""
            records.append(
                TreatmentRecord(
                    record_id=new_record_id(),
                    tooth_id=item.tooth_id,
                    status=status,
                    notes=notes,
                    specialty=item.specialty,
                    procedure_id=item.procedure_id,
                    procedure_name=item.procedure_name,
                    unit_price_cents=apply_floor(item.unit_price_cents),
                    quantity=max(1, item.quantity),
                    discount_percent=clamp_percent(item.discount_percent),
                    item_id=item.id,
                )
            )
        self._records = records
        self._pending_removals.clear()
        self.budget_id = budget.id

    def is_removing(self, record_id: str) -> bool:
        return record_id in self._pending_removals

    async def remove_record(self, record_id: str) -> bool:
        record = self.get(record_id)
        if record is None:
            logger.info("Removal of unknown record ignored", extra={"record_id": record_id})
            return False
        if not record.is_persisted:
            self._drop(record_id)
            return True
        if record_id in self._pending_removals:
            logger.info("Removal already in flight; ignored", extra={"record_id": record_id})
            return False
        if self.budget_store is None or self.budget_id is None:
            raise RuntimeError("Persisted budget items need a budget store and budget id to be removed")

        self._pending_removals.add(record_id)
        try:
            await self.budget_store.delete_item(self.budget_id, record.item_id)
        finally:
            self._pending_removals.discard(record_id)
        self._drop(record_id)
        return True

    def records_for_tooth(self, tooth: int | str) -> list[TreatmentRecord]:
        tooth_id = parse_tooth_id(tooth)
        return [record for record in self._records if record.tooth_id == tooth_id]

    def missing_procedure(self) -> list[TreatmentRecord]:
        return [record for record in self._records if not record.procedure_id]

    def subtotal(self) -> int:
        return sum(record.gross_cents for record in self._records)

    def discount_total(self) -> int:
        return self.subtotal() - self.total()

    def total(self) -> int:
        return sum(record.total_cents for record in self._records)

    def clear(self) -> None:
        self._records.clear()
        self._pending_removals.clear()

    def _index_of(self, record_id: str) -> int | None:
        for index, record in enumerate(self._records):
            if record.record_id == record_id:
                return index
        return None

    def _drop(self, record_id: str) -> None:
        index = self._index_of(record_id)
        if index is not None:
            del self._records[index]
            logger.info("Treatment record removed", extra={"record_id": record_id})

    def __iter__(self) -> Iterator[TreatmentRecord]:
        return iter(tuple(self._records))

    def __len__(self) -> int:
        return len(self._records)
