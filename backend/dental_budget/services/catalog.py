from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from dental_budget.schemas.procedure import Procedure, parse_procedure
from dental_budget.schemas.wire import text_key

logger = logging.getLogger(__name__)

COMMON_SPECIALTIES: tuple[str, ...] = (
    "Clínica Geral",
    "Ortodontia",
    "Endodontia",
    "Periodontia",
    "Implantodontia",
    "Cirurgia Oral",
    "Odontopediatria",
    "Prótese Dentária",
    "Estética Dental",
    "Radiologia Odontológica",
)


@dataclass(frozen=True)
class StaleReference:
    record_id: str
    tooth_id: int | None
    procedure_id: str | None
    procedure_name: str

    def describe(self) -> str:
        where = f"tooth {self.tooth_id}" if self.tooth_id is not None else "general item"
        return f"{where}: procedure {self.procedure_name or self.procedure_id} is no longer in the catalog"


def _name_key(procedure: Procedure) -> tuple[str, str]:
    return (text_key(procedure.name), procedure.id)


class ProcedureCatalog:
    def __init__(self, procedures: Iterable[Procedure] = ()) -> None:
        self._by_id: dict[str, Procedure] = {}
        for procedure in procedures:
            if procedure.id in self._by_id:
                logger.warning("Duplicate procedure id in catalog; keeping last", extra={"procedure_id": procedure.id})
            self._by_id[procedure.id] = procedure

    @classmethod
    def from_payloads(cls, raw_items: Iterable[Mapping[str, Any]] | None) -> "ProcedureCatalog":
        procedures: list[Procedure] = []
        dropped = 0
        for raw in raw_items or ():
            procedure = parse_procedure(raw) if isinstance(raw, Mapping) else None
            if procedure is None:
                dropped += 1
                continue
            procedures.append(procedure)
        if dropped:
            logger.warning("Catalog entries without id or name dropped", extra={"dropped": dropped})
        return cls(procedures)

    def find_by_id(self, procedure_id: str | int | None) -> Procedure | None:
        if procedure_id is None:
            return None
        return self._by_id.get(str(procedure_id).strip())

    def list_by_specialty(self, specialty: str | None) -> list[Procedure]:
        key = text_key(specialty)
        if not key:
            return []
        matches = [
            procedure
            for procedure in self._by_id.values()
            if procedure.active and text_key(procedure.specialty) == key
        ]
        return sorted(matches, key=_name_key)

    def active(self) -> list[Procedure]:
        return sorted((p for p in self._by_id.values() if p.active), key=_name_key)

    def specialties(self, include_common: bool = False) -> list[str]:
        seen: dict[str, str] = {}
        for procedure in self._by_id.values():
            if procedure.active and procedure.specialty:
                seen.setdefault(text_key(procedure.specialty), procedure.specialty.strip())
        if include_common:
            for name in COMMON_SPECIALTIES:
                seen.setdefault(text_key(name), name)
        return sorted(seen.values(), key=text_key)

    def resolve_by_name(self, name: str | None, specialty: str | None) -> Procedure | None:
        name_key = text_key(name)
        if not name_key:
            return None
        for procedure in self.list_by_specialty(specialty):
            if text_key(procedure.name) == name_key:
                return procedure
        return None

    def stale_references(self, records: Sequence[Any]) -> list[StaleReference]:
        stale: list[StaleReference] = []
        for record in records:
            if record.procedure_id is None or self.find_by_id(record.procedure_id) is not None:
                continue
            stale.append(
                StaleReference(
                    record_id=record.record_id,
                    tooth_id=record.tooth_id,
                    procedure_id=record.procedure_id,
                    procedure_name=record.procedure_name,
                )
            )
        return stale

    def __contains__(self, procedure_id: object) -> bool:
        return procedure_id is not None and str(procedure_id).strip() in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)
