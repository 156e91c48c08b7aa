from __future__ import annotations

import logging
from decimal import Decimal

from dental_budget.core.exceptions import RecordValidationError, SyncError
from dental_budget.core.settings import Settings, settings as default_settings
from dental_budget.schemas.odontogram import ChartCategory, category_for, parse_category, status_for
from dental_budget.schemas.procedure import Procedure
from dental_budget.schemas.wire import clean_text
from dental_budget.services.budget_assembler import BudgetAssembler, RecordDraft, TreatmentRecord
from dental_budget.services.catalog import ProcedureCatalog
from dental_budget.services.dentition import parse_tooth_id
from dental_budget.services.money import parse_amount, parse_masked_amount
from dental_budget.services.pricing import DiscountMode, LinePrice
from dental_budget.services.reconciliation import FinalizeResult, ReconciliationSync, SyncState
from dental_budget.services.stores import BudgetStore, ChartStore, ProcedureSource
from dental_budget.services.tooth_chart import ToothChart

logger = logging.getLogger(__name__)


class DentalRecordWorkflow:
    """State behind the dental record screen for one patient.

    A draft is started from a tooth (or the general, toothless flow), filled with
    specialty, procedure and price, then saved as a treatment record. Saving a
    tooth record also pushes that tooth's status to the chart store.
    """

    def __init__(
        self,
        patient_id: int | str,
        chart_store: ChartStore,
        budget_store: BudgetStore,
        procedure_source: ProcedureSource,
        config: Settings | None = None,
    ) -> None:
        self.patient_id = patient_id
        self.chart_store = chart_store
        self.budget_store = budget_store
        self.procedure_source = procedure_source
        self.config = config or default_settings

        self.chart = ToothChart()
        self.catalog = ProcedureCatalog()
        self.assembler = BudgetAssembler(budget_store)
        self.sync = ReconciliationSync(chart_store, budget_store, config=self.config)

        self.draft: RecordDraft | None = None
        self.price = LinePrice()
        self._in_flight = 0

    @property
    def busy(self) -> bool:
        return self._in_flight > 0 or self.sync.busy

    @property
    def records(self) -> tuple[TreatmentRecord, ...]:
        return self.assembler.records

    async def load(self) -> None:
        self._in_flight += 1
        try:
            self.chart = await self.chart_store.fetch(self.patient_id)
            self.catalog = await self.procedure_source.load_catalog()
        finally:
            self._in_flight -= 1
        logger.info(
            "Dental record loaded",
            extra={"patient_id": self.patient_id, "teeth": len(self.chart), "procedures": len(self.catalog)},
        )

    async def edit_budget(self, budget_id: int | str) -> None:
        self._in_flight += 1
        try:
            budget = await self.budget_store.get(budget_id)
        finally:
            self._in_flight -= 1
        self.assembler.load_budget(budget, self.chart)
        self.assembler.link_missing_procedures(self.catalog.resolve_by_name)

    def select_tooth(self, tooth: int | str) -> RecordDraft:
        tooth_id = parse_tooth_id(tooth)
        annotation = self.chart.get(tooth_id)
        # Every click starts a new record; a tooth may carry several.
        self.draft = RecordDraft(
            tooth_id=tooth_id,
            status=category_for(annotation.status),
            specialty=annotation.specialty or "",
            notes=annotation.notes or "",
        )
        self.price.reset()
        return self.draft

    def start_general(self) -> RecordDraft:
        self.draft = RecordDraft(status=ChartCategory.sound, specialty="")
        self.price.reset()
        return self.draft

    def _require_draft(self) -> RecordDraft:
        if self.draft is None:
            raise RecordValidationError("Select a tooth or start a general record first", missing=("tooth_id",))
        return self.draft

    @property
    def is_general(self) -> bool:
        return self.draft is not None and self.draft.tooth_id is None

    def specialties(self) -> list[str]:
        return self.catalog.specialties()

    def available_procedures(self) -> list[Procedure]:
        if self.draft is None:
            return []
        return self.catalog.list_by_specialty(self.draft.specialty)

    def choose_specialty(self, specialty: str | None) -> None:
        draft = self._require_draft()
        draft.specialty = clean_text(specialty) or ""
        draft.procedure_id = None
        draft.procedure_name = ""
        self.price.reset()

    def choose_procedure(self, procedure_id: str | int | None) -> Procedure | None:
        draft = self._require_draft()
        if procedure_id in (None, ""):
            draft.procedure_id = None
            draft.procedure_name = ""
            self.price.reset()
            return None
        procedure = next(
            (p for p in self.available_procedures() if p.id == str(procedure_id).strip()),
            None,
        )
        if procedure is None:
            raise RecordValidationError(
                f"Procedure {procedure_id} is not offered for {draft.specialty or 'this specialty'}",
                missing=("procedure_id",),
                tooth_ids=(draft.tooth_id,),
            )
        draft.procedure_id = procedure.id
        draft.procedure_name = procedure.name
        self.price.set_base(procedure.price_cents)
        return procedure

    def set_price(self, value: object, *, masked: bool = False) -> int:
        self._require_draft()
        cents = parse_masked_amount(str(value)) if masked else parse_amount(value)
        return self.price.set_base(cents)

    def set_discount(self, raw: str | None) -> int:
        self._require_draft()
        return self.price.set_discount(raw)

    def switch_discount_mode(self, mode: DiscountMode | str) -> int:
        self._require_draft()
        return self.price.switch_mode(mode)

    def set_status(self, status: ChartCategory | str) -> None:
        draft = self._require_draft()
        draft.status = parse_category(status)

    def set_notes(self, notes: str | None) -> None:
        self._require_draft().notes = notes or ""

    async def save_record(self) -> TreatmentRecord:
        draft = self._require_draft()
        draft.unit_price_cents = self.price.final_cents
        draft.quantity = 1
        draft.discount_percent = Decimal(0)
        record_id = self.assembler.add_record(draft)
        record = self.assembler.get(record_id)

        if record.tooth_id is not None:
            updated = self.chart.copy()
            updated.set(
                record.tooth_id,
                status=status_for(record.status),
                notes=record.notes,
                specialty=record.specialty,
            )
            self._in_flight += 1
            try:
                await self.chart_store.replace(self.patient_id, updated)
            except SyncError:
                await self.assembler.remove_record(record_id)
                logger.warning(
                    "Chart push failed; record rolled back",
                    extra={"patient_id": self.patient_id, "tooth_id": record.tooth_id},
                )
                raise
            finally:
                self._in_flight -= 1
            self.chart.replace_all(updated)

        self.draft = None
        self.price.reset()
        return record

    async def remove_record(self, record_id: str) -> bool:
        self._in_flight += 1
        try:
            return await self.assembler.remove_record(record_id)
        finally:
            self._in_flight -= 1

    async def set_item_fulfilled(self, record_id: str, fulfilled: bool) -> None:
        record = self.assembler.get(record_id)
        if record is None or not record.is_persisted or self.assembler.budget_id is None:
            raise KeyError(record_id)
        self._in_flight += 1
        try:
            await self.budget_store.set_item_fulfilled(self.assembler.budget_id, record.item_id, fulfilled)
        finally:
            self._in_flight -= 1

    async def finalize(self, notes: str | None = None) -> FinalizeResult:
        # Stale references are judged against the catalog as it is now.
        self._in_flight += 1
        try:
            self.catalog = await self.procedure_source.load_catalog()
        except SyncError as exc:
            logger.warning("Catalog reload failed before finalize: %s", exc, extra={"patient_id": self.patient_id})
            return FinalizeResult(state=SyncState.failed, failed_step="catalog", error=str(exc))
        finally:
            self._in_flight -= 1
        return await self.sync.finalize(
            self.patient_id,
            self.chart,
            self.assembler,
            catalog=self.catalog,
            notes=notes,
        )

    def subtotal(self) -> int:
        return self.assembler.subtotal()

    def discount_total(self) -> int:
        return self.assembler.discount_total()

    def total(self) -> int:
        return self.assembler.total()

    def chart_total(self) -> int:
        return self.chart.procedures_total()
