from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Iterable, Protocol

from pydantic import ValidationError

from dental_budget.core.exceptions import RecordValidationError, SyncError
from dental_budget.core.settings import Settings, settings as default_settings
from dental_budget.schemas.budget import BudgetCreate, BudgetItemIn, BudgetOut
from dental_budget.schemas.odontogram import status_for
from dental_budget.schemas.wire import wire_id
from dental_budget.services.budget_assembler import BudgetAssembler, TreatmentRecord
from dental_budget.services.catalog import ProcedureCatalog, StaleReference
from dental_budget.services.money import wire_amount
from dental_budget.services.pricing import apply_floor
from dental_budget.services.tooth_chart import ToothChart

logger = logging.getLogger(__name__)


class SyncState(str, enum.Enum):
    idle = "idle"
    validating = "validating"
    syncing_chart = "syncing_chart"
    syncing_budget = "syncing_budget"
    done = "done"
    failed = "failed"


class ChartWriter(Protocol):
    async def replace(self, patient_id: int | str, chart: ToothChart) -> None:
        raise NotImplementedError


class BudgetWriter(Protocol):
    async def create(self, payload: BudgetCreate) -> BudgetOut | None:
        raise NotImplementedError

    async def update(self, budget_id: int | str, payload: BudgetCreate) -> BudgetOut | None:
        raise NotImplementedError


@dataclass
class FinalizeResult:
    state: SyncState
    budget: BudgetOut | None = None
    missing_procedure_teeth: list[int | None] = field(default_factory=list)
    warnings: list[StaleReference] = field(default_factory=list)
    failed_step: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state == SyncState.done


def merge_records_into_chart(chart: ToothChart, records: Iterable[TreatmentRecord]) -> ToothChart:
    """Fold tooth records into a copy of ``chart``.

    Records are applied in list order, so when one tooth has several records the
    last one decides its status, notes and specialty. General records are skipped.
    """
    merged = chart.copy()
    for record in records:
        if record.tooth_id is None:
            continue
        merged.set(
            record.tooth_id,
            status=status_for(record.status),
            notes=record.notes,
            specialty=record.specialty,
        )
    return merged


def build_budget_payload(
    patient_id: int | str,
    records: Iterable[TreatmentRecord],
    notes: str | None = None,
) -> BudgetCreate:
    items = [
        BudgetItemIn(
            tooth_id=record.tooth_id,
            procedure_id=wire_id(record.procedure_id),
            procedure_name=record.procedure_name,
            specialty=record.specialty,
            quantity=record.quantity,
            discount_percent=float(record.discount_percent),
            unit_price=wire_amount(apply_floor(record.unit_price_cents)),
        )
        for record in records
    ]
    return BudgetCreate(patient_id=patient_id, notes=notes, items=items)


class ReconciliationSync:
    def __init__(
        self,
        chart_store: ChartWriter,
        budget_store: BudgetWriter,
        config: Settings | None = None,
    ) -> None:
        self.chart_store = chart_store
        self.budget_store = budget_store
        self.config = config or default_settings
        self.state = SyncState.idle

    @property
    def busy(self) -> bool:
        return self.state in {SyncState.validating, SyncState.syncing_chart, SyncState.syncing_budget}

    def _transition(self, state: SyncState, patient_id: int | str | None) -> None:
        logger.info("Finalize %s -> %s", self.state.value, state.value, extra={"patient_id": patient_id})
        self.state = state

    def _fail(self, patient_id: int | str | None, step: str, error: str, **details) -> FinalizeResult:
        self._transition(SyncState.failed, patient_id)
        logger.warning("Finalize failed at %s: %s", step, error, extra={"patient_id": patient_id})
        return FinalizeResult(state=SyncState.failed, failed_step=step, error=error, **details)

    async def finalize(
        self,
        patient_id: int | str | None,
        chart: ToothChart,
        assembler: BudgetAssembler,
        *,
        catalog: ProcedureCatalog | None = None,
        notes: str | None = None,
    ) -> FinalizeResult:
        self._transition(SyncState.validating, patient_id)
        records = assembler.records
        if patient_id in (None, ""):
            return self._fail(patient_id, "validating", "Invalid patient")
        if not records:
            return self._fail(patient_id, "validating", "Add at least one tooth or procedure")

        missing = assembler.missing_procedure()
        if missing:
            teeth = [record.tooth_id for record in missing]
            return self._fail(
                patient_id,
                "validating",
                "Records without a linked procedure: "
                + ", ".join("general" if tooth is None else str(tooth) for tooth in teeth),
                missing_procedure_teeth=teeth,
            )

        warnings = catalog.stale_references(records) if catalog is not None else []
        for warning in warnings:
            logger.warning("Stale procedure reference: %s", warning.describe(), extra={"patient_id": patient_id})
        if warnings and self.config.block_on_stale_references:
            return self._fail(
                patient_id,
                "validating",
                "; ".join(warning.describe() for warning in warnings),
                warnings=warnings,
            )

        try:
            merged = merge_records_into_chart(chart, records)
            payload = build_budget_payload(
                patient_id,
                records,
                notes or self.config.budget_notes_template.format(count=len(records)),
            )
        except (ValidationError, RecordValidationError) as exc:
            return self._fail(patient_id, "validating", str(exc), warnings=warnings)

        self._transition(SyncState.syncing_chart, patient_id)
        try:
            await self.chart_store.replace(patient_id, merged)
        except SyncError as exc:
            return self._fail(patient_id, "chart", str(exc), warnings=warnings)
        chart.replace_all(merged)

        self._transition(SyncState.syncing_budget, patient_id)
        try:
            if assembler.budget_id is None:
                budget = await self.budget_store.create(payload)
            else:
                budget = await self.budget_store.update(assembler.budget_id, payload)
        except SyncError as exc:
            return self._fail(patient_id, "budget", str(exc), warnings=warnings)

        assembler.clear()
        assembler.budget_id = None
        self._transition(SyncState.done, patient_id)
        return FinalizeResult(state=SyncState.done, budget=budget, warnings=warnings)
