from __future__ import annotations

import logging
from typing import Any, Iterator, Mapping

from pydantic import ValidationError

from dental_budget.core.exceptions import RecordValidationError
from dental_budget.schemas.odontogram import (
    Surface,
    ToothAnnotation,
    ToothStatus,
    annotation_to_wire,
    parse_annotation,
    parse_status,
)
from dental_budget.schemas.procedure import Procedure
from dental_budget.services.dentition import parse_tooth_id

logger = logging.getLogger(__name__)

_PROCEDURE_FIELDS = ("procedure_id", "procedure_name", "price_cents")
_FIELDS = frozenset(ToothAnnotation.model_fields)


class ToothChart:
    """One annotation per tooth. Writes merge into the existing entry, never append."""

    def __init__(self, entries: Mapping[int, ToothAnnotation] | None = None) -> None:
        self._entries: dict[int, ToothAnnotation] = {}
        for tooth, annotation in (entries or {}).items():
            self._entries[parse_tooth_id(tooth)] = annotation

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any] | None) -> "ToothChart":
        chart = cls()
        for key, value in (raw or {}).items():
            try:
                tooth = parse_tooth_id(key)
            except RecordValidationError:
                logger.warning("Chart entry with unknown tooth id dropped", extra={"tooth": key})
                continue
            if not isinstance(value, Mapping):
                logger.warning("Chart entry is not an object; dropped", extra={"tooth": key})
                continue
            try:
                chart._entries[tooth] = parse_annotation(value)
            except RecordValidationError as exc:
                logger.warning("Unreadable chart entry dropped: %s", exc, extra={"tooth": key})
        return chart

    def to_payload(self) -> dict[str, dict[str, Any]]:
        return {str(tooth): annotation_to_wire(self._entries[tooth]) for tooth in sorted(self._entries)}

    def copy(self) -> "ToothChart":
        return ToothChart(self._entries)

    def replace_all(self, other: "ToothChart") -> None:
        self._entries = dict(other._entries)

    def get(self, tooth: int | str) -> ToothAnnotation:
        return self._entries.get(parse_tooth_id(tooth), ToothAnnotation())

    def status_of(self, tooth: int | str) -> ToothStatus:
        return self.get(tooth).status

    def set(self, tooth: int | str, changes: Mapping[str, Any] | None = None, **kwargs: Any) -> ToothAnnotation:
        tooth_id = parse_tooth_id(tooth)
        updates = {**(changes or {}), **kwargs}
        unknown = set(updates) - _FIELDS
        if unknown:
            raise RecordValidationError(
                f"Unknown annotation fields: {', '.join(sorted(unknown))}",
                missing=tuple(sorted(unknown)),
                tooth_ids=(tooth_id,),
            )
        if "status" in updates and not isinstance(updates["status"], ToothStatus):
            updates["status"] = parse_status(updates["status"])

        current = self._entries.get(tooth_id, ToothAnnotation())
        merged = current.model_dump()
        if "specialty" in updates and updates["specialty"] != current.specialty:
            # A new specialty invalidates the procedure/price picked under the old one.
            for name in _PROCEDURE_FIELDS:
                merged[name] = None
        merged.update(updates)
        try:
            annotation = ToothAnnotation.model_validate(merged)
        except ValidationError as exc:
            raise RecordValidationError(
                f"Invalid annotation for tooth {tooth_id}: {exc}", tooth_ids=(tooth_id,)
            ) from exc
        self._entries[tooth_id] = annotation
        return annotation

    def set_procedure(self, tooth: int | str, procedure: Procedure | None) -> ToothAnnotation:
        current = self.get(tooth)
        if procedure is None:
            return self.set(tooth, procedure_id=None, procedure_name=None)
        return self.set(
            tooth,
            procedure_id=procedure.id,
            procedure_name=procedure.name,
            price_cents=procedure.price_cents if procedure.price_cents else current.price_cents,
            specialty=current.specialty or procedure.specialty,
        )

    def toggle_surface(self, tooth: int | str, surface: Surface | str) -> ToothAnnotation:
        code = surface if isinstance(surface, Surface) else Surface(surface.strip().upper())
        surfaces = set(self.get(tooth).surfaces)
        surfaces ^= {code}
        return self.set(tooth, surfaces=frozenset(surfaces))

    def clear(self, tooth: int | str) -> None:
        self._entries.pop(parse_tooth_id(tooth), None)

    def annotated_teeth(self) -> list[int]:
        return sorted(self._entries)

    def procedures_total(self) -> int:
        return sum(a.price_cents for a in self._entries.values() if a.price_cents is not None)

    def __contains__(self, tooth: object) -> bool:
        try:
            return parse_tooth_id(tooth) in self._entries
        except RecordValidationError:
            return False

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ToothChart):
            return NotImplemented
        return self._entries == other._entries
