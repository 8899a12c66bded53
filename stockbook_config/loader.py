"""
Configuration Loader (``stockbook_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into the typed ``stockbook_config.schema``
dataclasses. Services never call this directly; the runtime entry point is
``stockbook_config.get_active_config()``.

Invariants enforced
-------------------
* Unknown keys and out-of-range values raise ``ValueError``; nothing is
  silently ignored.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad keys or values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from stockbook_config.schema import (
    AgingBucketDef,
    EngineConfig,
    InsufficientStockPolicy,
    JournalCategories,
)
from stockbook_kernel.domain.currency import CurrencyRegistry

_TOP_LEVEL_KEYS = frozenset(
    f.name for f in fields(EngineConfig) if f.name != "checksum"
)
_CATEGORY_KEYS = frozenset(f.name for f in fields(JournalCategories))


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return data


def merge_config_data(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Overlay ``override`` on ``base``; ``journal_categories`` merges per key."""
    merged = dict(base)
    for key, value in override.items():
        if key == "journal_categories" and isinstance(value, dict):
            merged[key] = {**base.get(key, {}), **value}
        else:
            merged[key] = value
    return merged


def _parse_positive_int(data: dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{key} must be a positive integer, got {value!r}")
    return value


def parse_aging_buckets(raw: Any) -> tuple[AgingBucketDef, ...]:
    """Parse and validate the ordered bucket list.

    Buckets must start at day 0, be contiguous, and only the last may be
    unbounded.
    """
    if not isinstance(raw, list) or not raw:
        raise ValueError("aging_buckets must be a non-empty list")
    buckets: list[AgingBucketDef] = []
    expected_min = 0
    for i, item in enumerate(raw):
        bucket = AgingBucketDef(
            name=str(item["name"]),
            min_days=int(item["min_days"]),
            max_days=None if item.get("max_days") is None else int(item["max_days"]),
        )
        if bucket.min_days != expected_min:
            raise ValueError(
                f"aging bucket {bucket.name!r} starts at {bucket.min_days}, expected {expected_min}"
            )
        if bucket.max_days is None:
            if i != len(raw) - 1:
                raise ValueError("only the last aging bucket may be unbounded")
        elif bucket.max_days < bucket.min_days:
            raise ValueError(f"aging bucket {bucket.name!r} ends before it starts")
        else:
            expected_min = bucket.max_days + 1
        buckets.append(bucket)
    return tuple(buckets)


def parse_engine_config(data: dict[str, Any], checksum: str = "") -> EngineConfig:
    """
    Parse an ``EngineConfig`` from a dict.

    Postconditions:
        - Returns a frozen ``EngineConfig``; keys absent from ``data`` take
          the dataclass defaults.
    Raises:
        ValueError: unknown keys or invalid values.
    """
    unknown = set(data) - _TOP_LEVEL_KEYS
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")

    defaults = EngineConfig()

    currency = str(data.get("currency", defaults.currency)).upper().strip()
    if not CurrencyRegistry.is_valid(currency):
        raise ValueError(f"Unknown currency: {currency}")

    policy_raw = data.get("insufficient_stock_policy", defaults.insufficient_stock_policy.value)
    try:
        policy = InsufficientStockPolicy(policy_raw)
    except ValueError as e:
        raise ValueError(
            f"insufficient_stock_policy must be one of "
            f"{[p.value for p in InsufficientStockPolicy]}, got {policy_raw!r}"
        ) from e

    threshold_raw = data.get("low_stock_threshold", defaults.low_stock_threshold)
    if isinstance(threshold_raw, (bool, float)):
        raise ValueError("low_stock_threshold must be an integer or a decimal string")
    try:
        threshold = Decimal(str(threshold_raw))
    except InvalidOperation as e:
        raise ValueError(f"low_stock_threshold is not a number: {threshold_raw!r}") from e
    if threshold < 0:
        raise ValueError("low_stock_threshold must not be negative")

    categories_raw = data.get("journal_categories", {}) or {}
    unknown_categories = set(categories_raw) - _CATEGORY_KEYS
    if unknown_categories:
        raise ValueError(f"Unknown journal categories: {sorted(unknown_categories)}")
    for key, value in categories_raw.items():
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"journal_categories.{key} must be a non-empty string")
    categories = JournalCategories(**{k: v.strip() for k, v in categories_raw.items()})

    buckets = (
        parse_aging_buckets(data["aging_buckets"])
        if "aging_buckets" in data
        else defaults.aging_buckets
    )

    return EngineConfig(
        currency=currency,
        insufficient_stock_policy=policy,
        low_stock_threshold=threshold,
        recent_journal_limit=_parse_positive_int(
            data, "recent_journal_limit", defaults.recent_journal_limit
        ),
        profit_history_months=_parse_positive_int(
            data, "profit_history_months", defaults.profit_history_months
        ),
        journal_categories=categories,
        aging_buckets=buckets,
        checksum=checksum,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
