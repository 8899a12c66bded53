"""
Tests for YAML configuration loading.

Covers:
- Packaged defaults match the EngineConfig dataclass defaults
- Override files from an argument or STOCKBOOK_CONFIG
- Validation of keys, currency, policy, threshold and aging buckets
- Checksum determinism
"""

import pytest
from decimal import Decimal

from stockbook_config import (
    CONFIG_ENV_VAR,
    AgingBucketDef,
    EngineConfig,
    InsufficientStockPolicy,
    get_active_config,
)
from stockbook_config.loader import (
    compute_checksum,
    merge_config_data,
    parse_aging_buckets,
    parse_engine_config,
)


@pytest.fixture(autouse=True)
def _no_env_override(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


class TestDefaults:
    """defaults.yaml and the dataclass agree."""

    def test_packaged_defaults(self):
        config = get_active_config()
        expected = EngineConfig()

        assert config.currency == "PHP"
        assert config.insufficient_stock_policy == InsufficientStockPolicy.REJECT
        assert config.low_stock_threshold == Decimal("10")
        assert config.journal_categories == expected.journal_categories
        assert config.aging_buckets == expected.aging_buckets
        assert len(config.checksum) == 64

    def test_category_helpers(self):
        categories = EngineConfig().journal_categories
        assert categories.payable("Suppliers") == "Accounts Payable - Suppliers"
        assert categories.receivable(None) == "Accounts Receivable"


class TestOverrides:
    """Override files merge over the defaults."""

    def test_path_argument(self, tmp_path):
        override = tmp_path / "shop.yaml"
        override.write_text(
            "insufficient_stock_policy: partial\n"
            "low_stock_threshold: 5\n"
            "journal_categories:\n"
            "  sales: Store Sales\n"
        )

        config = get_active_config(override)

        assert config.allows_partial_fill
        assert config.low_stock_threshold == Decimal("5")
        assert config.journal_categories.sales == "Store Sales"
        assert config.journal_categories.payments == "Payments"

    def test_environment_variable(self, tmp_path, monkeypatch):
        override = tmp_path / "usd.yaml"
        override.write_text("currency: usd\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(override))

        assert get_active_config().currency == "USD"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_non_mapping_document(self, tmp_path):
        override = tmp_path / "list.yaml"
        override.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            get_active_config(override)

    def test_trace_logged(self, captured_logs):
        get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "STOCKBOOK_CONFIG_TRACE"]
        assert traces[0]["currency"] == "PHP"


class TestValidation:
    """Invalid values are rejected, never ignored."""

    @pytest.mark.parametrize("data", [
        {"colour": "blue"},
        {"currency": "XXX"},
        {"insufficient_stock_policy": "backorder"},
        {"low_stock_threshold": -1},
        {"low_stock_threshold": 2.5},
        {"low_stock_threshold": "many"},
        {"recent_journal_limit": 0},
        {"profit_history_months": True},
        {"journal_categories": {"refunds": "Refunds"}},
        {"journal_categories": {"sales": "  "}},
    ])
    def test_rejected(self, data):
        with pytest.raises(ValueError):
            parse_engine_config(data)

    def test_partial_data_takes_defaults(self):
        config = parse_engine_config({"low_stock_threshold": "2.5"})
        assert config.low_stock_threshold == Decimal("2.5")
        assert config.currency == "PHP"


class TestAgingBuckets:
    """Buckets are contiguous from day 0."""

    def test_valid_buckets(self):
        buckets = parse_aging_buckets([
            {"name": "Fresh", "min_days": 0, "max_days": 14},
            {"name": "Stale", "min_days": 15, "max_days": None},
        ])
        assert buckets == (AgingBucketDef("Fresh", 0, 14), AgingBucketDef("Stale", 15, None))

    @pytest.mark.parametrize("raw", [
        [],
        [{"name": "Late", "min_days": 1, "max_days": None}],
        [{"name": "A", "min_days": 0, "max_days": 10}, {"name": "B", "min_days": 12}],
        [{"name": "A", "min_days": 0}, {"name": "B", "min_days": 1}],
        [{"name": "A", "min_days": 0, "max_days": -1}],
    ])
    def test_invalid_buckets(self, raw):
        with pytest.raises(ValueError):
            parse_aging_buckets(raw)


class TestChecksum:
    """Checksums identify configuration content."""

    def test_key_order_irrelevant(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_content_changes_checksum(self):
        base = {"currency": "PHP"}
        changed = merge_config_data(base, {"currency": "USD"})
        assert compute_checksum(base) != compute_checksum(changed)
        assert base == {"currency": "PHP"}
