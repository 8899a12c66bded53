"""
Currency registry.

One engine instance books in a single configured currency. The registry
lists the ISO 4217 codes that configuration may name and how many minor
digits each one rounds to.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    name: str
    decimal_places: int


# (code, minor digits, name)
_TABLE: tuple[tuple[str, int, str], ...] = (
    ("PHP", 2, "Philippine Peso"),
    ("USD", 2, "US Dollar"),
    ("EUR", 2, "Euro"),
    ("GBP", 2, "Pound Sterling"),
    ("AUD", 2, "Australian Dollar"),
    ("CAD", 2, "Canadian Dollar"),
    ("SGD", 2, "Singapore Dollar"),
    ("MYR", 2, "Malaysian Ringgit"),
    ("THB", 2, "Thai Baht"),
    ("IDR", 2, "Indonesian Rupiah"),
    ("INR", 2, "Indian Rupee"),
    ("KES", 2, "Kenyan Shilling"),
    ("NGN", 2, "Nigerian Naira"),
    ("JPY", 0, "Japanese Yen"),
    ("KRW", 0, "South Korean Won"),
    ("VND", 0, "Vietnamese Dong"),
    ("KWD", 3, "Kuwaiti Dinar"),
)

_BY_CODE = MappingProxyType({
    code: CurrencyInfo(code=code, name=name, decimal_places=places)
    for code, places, name in _TABLE
})


def _normalize(code: object) -> str | None:
    if not isinstance(code, str) or not code.strip():
        return None
    return code.strip().upper()


class CurrencyRegistry:
    """Lookup over the supported currencies. Codes are matched case-insensitively."""

    @staticmethod
    def get_info(code: object) -> CurrencyInfo | None:
        normalized = _normalize(code)
        return _BY_CODE.get(normalized) if normalized else None

    @classmethod
    def is_valid(cls, code: object) -> bool:
        return cls.get_info(code) is not None

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        info = cls.get_info(code)
        if info is None:
            raise ValueError(f"Invalid ISO 4217 currency code: {code!r}")
        return info.decimal_places

    @staticmethod
    def all_codes() -> frozenset[str]:
        return frozenset(_BY_CODE)
