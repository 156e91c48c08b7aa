import pytest

from dental_budget.core.exceptions import RecordValidationError
from dental_budget.services.dentition import (
    DECIDUOUS_TEETH,
    PERMANENT_TEETH,
    VALID_TEETH,
    is_deciduous,
    parse_tooth_id,
    teeth_for,
    tooth_kind,
)


def test_dentition_sizes():
    assert len(PERMANENT_TEETH["upper"]) + len(PERMANENT_TEETH["lower"]) == 32
    assert len(DECIDUOUS_TEETH["upper"]) + len(DECIDUOUS_TEETH["lower"]) == 20
    assert len(VALID_TEETH) == 52


def test_arch_order_runs_right_to_left():
    assert PERMANENT_TEETH["upper"][:2] == (18, 17)
    assert PERMANENT_TEETH["upper"][7:9] == (11, 21)
    assert DECIDUOUS_TEETH["lower"][-1] == 75


def test_teeth_for_dentition_type():
    assert teeth_for("deciduous") is DECIDUOUS_TEETH
    assert teeth_for("permanent") is PERMANENT_TEETH


@pytest.mark.parametrize("value", [11, "11", " 11 ", "48", 55, "75"])
def test_parse_tooth_id_accepts_known_codes(value):
    assert parse_tooth_id(value) in VALID_TEETH


@pytest.mark.parametrize("value", [None, "", "19", 10, 56, "1a", -11, True, 11.5])
def test_parse_tooth_id_rejects_unknown_codes(value):
    with pytest.raises(RecordValidationError) as exc:
        parse_tooth_id(value)
    assert exc.value.missing == ("tooth_id",)


@pytest.mark.parametrize(
    ("tooth", "expected"),
    [
        (18, "molar"),
        (36, "molar"),
        (15, "premolar"),
        (44, "premolar"),
        (13, "canine"),
        (53, "canine"),
        (11, "incisor"),
        (42, "incisor"),
        (55, "molar"),
        (84, "molar"),
    ],
)
def test_tooth_kind(tooth: int, expected: str):
    assert tooth_kind(tooth) == expected


def test_is_deciduous():
    assert is_deciduous(61)
    assert not is_deciduous(21)
