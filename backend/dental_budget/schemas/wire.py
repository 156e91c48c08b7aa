from __future__ import annotations

from typing import Any, Mapping


def first_present(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is not None and value != "":
            return value
    return None


def clean_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def text_key(value: str | None) -> str:
    return (value or "").strip().casefold()


def wire_id(value: str | int | None) -> str | int | None:
    if value is None:
        return None
    text = str(value).strip()
    return int(text) if text.isdigit() else text


def coerce_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in {"1", "true", "yes", "on", "sim", "s"}
