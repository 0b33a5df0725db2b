from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

DATE_FIELDS = ("createdAt", "updatedAt")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def truncate_to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_iso(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def from_epoch_ms(value: int | float) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def encode_value(value: Any) -> Any:
    """Convert Python values into Parse REST JSON (dates become ``{"__type": "Date"}``)."""
    if isinstance(value, datetime):
        return {"__type": "Date", "iso": to_iso(value)}
    if isinstance(value, dict):
        return {key: encode_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [encode_value(item) for item in value]
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict):
        if value.get("__type") == "Date" and "iso" in value:
            return parse_iso(value["iso"])
        return {key: decode_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [decode_value(item) for item in value]
    return value


def decode_record(payload: dict[str, Any]) -> dict[str, Any]:
    record = decode_value(payload)
    for field in DATE_FIELDS:
        if isinstance(record.get(field), str):
            record[field] = parse_iso(record[field])
    return record


def encode_record(record: dict[str, Any]) -> dict[str, Any]:
    return {key: encode_value(value) for key, value in record.items() if key not in ("objectId", *DATE_FIELDS)}
