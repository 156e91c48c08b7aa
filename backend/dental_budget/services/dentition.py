from __future__ import annotations

from typing import Any, Literal

from dental_budget.core.exceptions import RecordValidationError

ToothKind = Literal["molar", "premolar", "canine", "incisor"]
DentitionType = Literal["permanent", "deciduous"]

# Arch order as drawn on the chart: patient's right to left.
PERMANENT_TEETH: dict[str, tuple[int, ...]] = {
    "upper": (18, 17, 16, 15, 14, 13, 12, 11, 21, 22, 23, 24, 25, 26, 27, 28),
    "lower": (48, 47, 46, 45, 44, 43, 42, 41, 31, 32, 33, 34, 35, 36, 37, 38),
}
DECIDUOUS_TEETH: dict[str, tuple[int, ...]] = {
    "upper": (55, 54, 53, 52, 51, 61, 62, 63, 64, 65),
    "lower": (85, 84, 83, 82, 81, 71, 72, 73, 74, 75),
}

VALID_PERMANENT_TEETH = frozenset(PERMANENT_TEETH["upper"] + PERMANENT_TEETH["lower"])
VALID_DECIDUOUS_TEETH = frozenset(DECIDUOUS_TEETH["upper"] + DECIDUOUS_TEETH["lower"])
VALID_TEETH = VALID_PERMANENT_TEETH | VALID_DECIDUOUS_TEETH


def teeth_for(dentition: DentitionType) -> dict[str, tuple[int, ...]]:
    if dentition == "deciduous":
        return DECIDUOUS_TEETH
    return PERMANENT_TEETH


def parse_tooth_id(value: Any) -> int:
    if isinstance(value, bool):
        raise RecordValidationError(f"Invalid tooth id: {value!r}", missing=("tooth_id",))
    text = str(value if value is not None else "").strip()
    if not text.isdigit() or int(text) not in VALID_TEETH:
        raise RecordValidationError(
            f"Invalid tooth id: {value!r}. "
            "Permanent: 11-18, 21-28, 31-38, 41-48. Deciduous: 51-55, 61-65, 71-75, 81-85.",
            missing=("tooth_id",),
        )
    return int(text)


def is_deciduous(tooth: int) -> bool:
    return tooth in VALID_DECIDUOUS_TEETH


def tooth_kind(tooth: int) -> ToothKind:
    position = tooth % 10
    if position in {6, 7, 8}:
        return "molar"
    if position in {4, 5}:
        # Deciduous 4/5 are the primary molars.
        return "molar" if is_deciduous(tooth) else "premolar"
    if position == 3:
        return "canine"
    return "incisor"
