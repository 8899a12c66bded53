"""
stockbook_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the only way to obtain configuration at runtime through
    ``get_active_config()``. Services receive the resulting EngineConfig and
    never read files or environment variables themselves.

Architecture position:
    Configuration -- YAML-driven, sits above stockbook_kernel and below
    stockbook_services. The kernel and engines never import this package.

Resolution order:
    1. The ``path`` argument, when given.
    2. The file named by the ``STOCKBOOK_CONFIG`` environment variable.
    3. The packaged ``defaults.yaml`` alone.
    An override file is merged over ``defaults.yaml``.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``STOCKBOOK_CONFIG_TRACE`` log record with the source path and checksum.
"""

from __future__ import annotations

import os
from pathlib import Path

from stockbook_config.loader import (
    compute_checksum,
    load_yaml_file,
    merge_config_data,
    parse_engine_config,
)
from stockbook_config.schema import (
    AgingBucketDef,
    EngineConfig,
    InsufficientStockPolicy,
    JournalCategories,
)
from stockbook_kernel.logging_config import get_logger

__all__ = [
    "AgingBucketDef",
    "EngineConfig",
    "InsufficientStockPolicy",
    "JournalCategories",
    "CONFIG_ENV_VAR",
    "DEFAULTS_PATH",
    "get_active_config",
]

_logger = get_logger("config")

CONFIG_ENV_VAR = "STOCKBOOK_CONFIG"
DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: str | Path | None = None) -> EngineConfig:
    """The public configuration entrypoint.

    Args:
        path: Optional override file. Falls back to ``$STOCKBOOK_CONFIG``.

    Returns:
        A frozen EngineConfig whose ``checksum`` identifies the merged
        source data.
    """
    data = load_yaml_file(DEFAULTS_PATH)

    override_path = path or os.environ.get(CONFIG_ENV_VAR) or None
    source = str(DEFAULTS_PATH)
    if override_path:
        override = load_yaml_file(Path(override_path))
        data = merge_config_data(data, override)
        source = str(override_path)

    checksum = compute_checksum(data)
    config = parse_engine_config(data, checksum=checksum)

    _logger.info(
        "STOCKBOOK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCKBOOK_CONFIG_TRACE",
            "source": source,
            "checksum": checksum,
            "currency": config.currency,
            "insufficient_stock_policy": config.insufficient_stock_policy.value,
        },
    )
    return config
