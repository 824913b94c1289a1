"""
Horodatages : tout est stocké localement en UTC naïf (SQLite ne conserve pas le fuseau).
Les valeurs distantes arrivent en ISO 8601, avec ou sans fuseau.
"""

import re
from datetime import date, datetime, timezone
from typing import Optional, Union

_FRACTION = re.compile(r"\.(\d+)")
_SHORT_OFFSET = re.compile(r"(\d{2}:\d{2}(?::\d{2})?(?:\.\d+)?)([+-]\d{2})$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Convertit une valeur distante en datetime UTC naïf. None ou chaîne vide → None."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(_normalize_iso(value))
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _normalize_iso(value: str) -> str:
    """Fraction ramenée à 6 chiffres et fuseau '+00' complété : Postgres tronque les zéros finaux."""
    value = value.strip().replace("Z", "+00:00")
    value = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)
    return _SHORT_OFFSET.sub(r"\1\2:00", value)


def parse_date(value: Union[str, date, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Sérialise un datetime UTC naïf pour la base distante (suffixe +00:00 explicite)."""
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat()


def last_modified(row: dict) -> Optional[datetime]:
    """max(updated_at, created_at) d'une ligne distante."""
    candidates = [parse_timestamp(row.get("updated_at")), parse_timestamp(row.get("created_at"))]
    candidates = [c for c in candidates if c is not None]
    return max(candidates) if candidates else None
