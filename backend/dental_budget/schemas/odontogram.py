from __future__ import annotations

import enum
import logging
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from dental_budget.core.exceptions import RecordValidationError
from dental_budget.schemas.wire import clean_text, first_present
from dental_budget.services.money import parse_amount, wire_amount

logger = logging.getLogger(__name__)


class ToothStatus(str, enum.Enum):
    sound = "sound"
    decayed = "decayed"
    restored = "restored"
    missing = "missing"
    implant = "implant"
    endodontic = "endodontic"


class ChartCategory(str, enum.Enum):
    sound = "sound"
    decayed = "decayed"
    restored = "restored"
    missing = "missing"
    implant = "implant"
    prosthesis = "prosthesis"
    endodontic = "endodontic"
    extraction_indicated = "extraction_indicated"


class Surface(str, enum.Enum):
    mesial = "M"
    distal = "D"
    vestibular = "V"
    lingual = "L"
    occlusal = "O"
    incisal = "I"


CATEGORY_TO_STATUS: dict[ChartCategory, ToothStatus] = {
    ChartCategory.sound: ToothStatus.sound,
    ChartCategory.decayed: ToothStatus.decayed,
    ChartCategory.restored: ToothStatus.restored,
    ChartCategory.missing: ToothStatus.missing,
    ChartCategory.implant: ToothStatus.implant,
    ChartCategory.prosthesis: ToothStatus.restored,
    ChartCategory.endodontic: ToothStatus.endodontic,
    ChartCategory.extraction_indicated: ToothStatus.decayed,
}

STATUS_TO_CATEGORY: dict[ToothStatus, ChartCategory] = {
    status: ChartCategory(status.value) for status in ToothStatus
}

_STATUS_ALIASES: dict[str, ToothStatus] = {
    "sadio": ToothStatus.sound,
    "higido": ToothStatus.sound,
    "hígido": ToothStatus.sound,
    "cariado": ToothStatus.decayed,
    "restaurado": ToothStatus.restored,
    "protese": ToothStatus.restored,
    "prótese": ToothStatus.restored,
    "ausente": ToothStatus.missing,
    "implante": ToothStatus.implant,
    "endo": ToothStatus.endodontic,
    "endodontia": ToothStatus.endodontic,
    "extração indicada": ToothStatus.decayed,
    "extracao_indicada": ToothStatus.decayed,
}


def parse_status(value: Any) -> ToothStatus:
    text = (clean_text(value) or ToothStatus.sound.value).casefold()
    try:
        return ToothStatus(text)
    except ValueError:
        pass
    if text in _STATUS_ALIASES:
        return _STATUS_ALIASES[text]
    raise RecordValidationError(f"Unknown tooth status: {value!r}", missing=("status",))


_CATEGORY_ALIASES: dict[str, ChartCategory] = {
    "higido": ChartCategory.sound,
    "hígido": ChartCategory.sound,
    "cariado": ChartCategory.decayed,
    "restaurado": ChartCategory.restored,
    "ausente": ChartCategory.missing,
    "implante": ChartCategory.implant,
    "protese": ChartCategory.prosthesis,
    "prótese": ChartCategory.prosthesis,
    "endodontia": ChartCategory.endodontic,
    "extracao_indicada": ChartCategory.extraction_indicated,
}


def parse_category(value: Any) -> ChartCategory:
    if isinstance(value, ChartCategory):
        return value
    text = (clean_text(value) or "").casefold()
    try:
        return ChartCategory(text)
    except ValueError:
        pass
    if text in _CATEGORY_ALIASES:
        return _CATEGORY_ALIASES[text]
    if text:
        # Backing-store values such as "Sadio" or "Endo".
        return category_for(parse_status(text))
    raise RecordValidationError("Status is required", missing=("status",))


def category_for(status: ToothStatus) -> ChartCategory:
    return STATUS_TO_CATEGORY[status]


def status_for(category: ChartCategory | str) -> ToothStatus:
    return CATEGORY_TO_STATUS[ChartCategory(category)]


class ToothAnnotation(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ToothStatus = ToothStatus.sound
    notes: str | None = None
    specialty: str | None = None
    procedure_id: str | None = None
    procedure_name: str | None = None
    price_cents: int | None = Field(default=None, ge=0)
    surfaces: frozenset[Surface] = frozenset()


def _parse_surfaces(raw: Any) -> frozenset[Surface]:
    if not raw:
        return frozenset()
    if isinstance(raw, Mapping):
        codes = [code for code, mark in raw.items() if mark]
    else:
        codes = list(raw)
    surfaces = set()
    for code in codes:
        try:
            surfaces.add(Surface(str(code).strip().upper()))
        except ValueError:
            logger.warning("Unknown tooth surface dropped", extra={"surface": code})
    return frozenset(surfaces)


def parse_annotation(raw: Mapping[str, Any] | None) -> ToothAnnotation:
    if not raw:
        return ToothAnnotation()
    price = first_present(raw, "price", "preco", "valor")
    try:
        return ToothAnnotation(
            status=parse_status(raw.get("status")),
            notes=raw.get("notes") if raw.get("notes") is not None else raw.get("observacoes"),
            specialty=clean_text(first_present(raw, "specialty", "especialidade")),
            procedure_id=clean_text(first_present(raw, "procedureId", "procedimentoId")),
            procedure_name=clean_text(first_present(raw, "procedureName", "procedimentoNome")),
            price_cents=max(0, parse_amount(price)) if price is not None else None,
            surfaces=_parse_surfaces(first_present(raw, "surfaces", "faces")),
        )
    except ValidationError as exc:
        raise RecordValidationError(f"Invalid tooth annotation: {exc}") from exc


def annotation_to_wire(annotation: ToothAnnotation) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "status": annotation.status.value,
        "notes": annotation.notes or "",
        "specialty": annotation.specialty,
        "procedureId": annotation.procedure_id,
        "procedureName": annotation.procedure_name,
        "price": wire_amount(annotation.price_cents) if annotation.price_cents is not None else None,
    }
    if annotation.surfaces:
        payload["surfaces"] = {surface.value: "x" for surface in sorted(annotation.surfaces, key=lambda s: s.value)}
    return payload
