from __future__ import annotations

import logging
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

from dental_budget.core.exceptions import RecordValidationError
from dental_budget.schemas.wire import clean_text, coerce_bool, first_present
from dental_budget.services.money import parse_amount

logger = logging.getLogger(__name__)


class Procedure(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    specialty: str | None = None
    price_cents: int = Field(default=0, ge=0)
    active: bool = True


def parse_procedure(raw: Mapping[str, Any] | None) -> Procedure | None:
    if not raw:
        return None
    procedure_id = clean_text(first_present(raw, "id", "procedureId", "procedimentoId", "_id"))
    name = clean_text(first_present(raw, "name", "nome", "title"))
    if procedure_id is None or name is None:
        return None
    specialty = clean_text(
        first_present(raw, "specialty", "especialidade", "categoria", "especialidadeNome")
    )
    try:
        price_cents = max(0, parse_amount(first_present(raw, "price", "preco", "valor")))
    except RecordValidationError:
        logger.warning("Procedure price unreadable; using 0", extra={"procedure_id": procedure_id})
        price_cents = 0
    active = coerce_bool(first_present(raw, "active", "ativo"), default=True)
    return Procedure(
        id=procedure_id,
        name=name,
        specialty=specialty,
        price_cents=price_cents,
        active=active,
    )
