"""Structured locality and coordinate values.

The intake form sends the locality as one comma-joined string
``"postal code,village,district,city,province"`` and the position as
``"lat,lon"``. Both are parsed once, at ingestion time, into the value
types below. Malformed input is never rejected: absent components stay
``None`` and are listed in ``missing`` so callers can log them.
"""

from __future__ import annotations

from dataclasses import dataclass, field

LOCALITY_FIELDS = ("postal_code", "village", "district", "city", "province")


def _part(parts: list[str], index: int) -> str | None:
    if index >= len(parts):
        return None
    value = parts[index].strip()
    return value or None


@dataclass(frozen=True)
class Locality:
    postal_code: str | None = None
    village: str | None = None
    district: str | None = None
    city: str | None = None
    province: str | None = None
    raw: str = field(default="", compare=False)

    @classmethod
    def parse(cls, raw: str | None) -> "Locality":
        raw = raw or ""
        parts = raw.split(",") if raw.strip() else []
        return cls(
            postal_code=_part(parts, 0),
            village=_part(parts, 1),
            district=_part(parts, 2),
            city=_part(parts, 3),
            province=_part(parts, 4),
            raw=raw,
        )

    @property
    def missing(self) -> list[str]:
        return [name for name in LOCALITY_FIELDS if getattr(self, name) is None]

    @property
    def is_complete(self) -> bool:
        return not self.missing

    def as_columns(self) -> dict:
        """Column values for the Submission model."""
        return {
            "postal_code": self.postal_code,
            "village_name": self.village,
            "district": self.district,
            "city": self.city,
            "province": self.province,
        }


@dataclass(frozen=True)
class Coordinates:
    latitude: str | None = None
    longitude: str | None = None

    @classmethod
    def parse(cls, raw: str | None) -> "Coordinates":
        parts = (raw or "").split(",")
        return cls(latitude=_part(parts, 0), longitude=_part(parts, 1))

    @property
    def missing(self) -> list[str]:
        return [name for name in ("latitude", "longitude") if getattr(self, name) is None]
