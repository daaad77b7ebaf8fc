"""
Purchase Order Configuration Schema.

Defines the structure and sensible defaults for purchase order settings.
Values can be overridden from a dictionary or a YAML file at runtime.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Self

import yaml

from purchasing_kernel.logging_config import get_logger

logger = get_logger("modules.purchase_order.config")


@dataclass
class PurchaseOrderConfig:
    """
    Configuration schema for the purchase order module.

    Override at instantiation:

        config = PurchaseOrderConfig(order_prefix="PUR", sequence_padding=5)

    or from a YAML file whose top-level keys match the field names:

        config = PurchaseOrderConfig.from_yaml("purchasing.yaml")
    """

    # Document numbering: <PREFIX>-<YEAR>-<SEQ>
    order_prefix: str = "PO"
    receipt_prefix: str = "GR"
    return_prefix: str = "PR"
    sequence_padding: int = 4

    # Money
    money_places: int = 2
    default_currency: str = "USD"

    # Payments recorded before the order is approved
    allow_prepayment: bool = True

    def __post_init__(self):
        if self.sequence_padding < 1:
            raise ValueError(f"sequence_padding must be >= 1, got {self.sequence_padding}")
        if self.money_places < 0:
            raise ValueError(f"money_places cannot be negative, got {self.money_places}")
        for name in ("order_prefix", "receipt_prefix", "return_prefix", "default_currency"):
            if not getattr(self, name):
                raise ValueError(f"{name} cannot be empty")
        logger.info(
            "purchase_order_config_initialized",
            extra={
                "order_prefix": self.order_prefix,
                "receipt_prefix": self.receipt_prefix,
                "return_prefix": self.return_prefix,
                "sequence_padding": self.sequence_padding,
                "default_currency": self.default_currency,
                "allow_prepayment": self.allow_prepayment,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the standard defaults."""
        logger.info("purchase_order_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a dictionary (e.g., loaded from a file)."""
        logger.info(
            "purchase_order_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown purchase order config keys: {', '.join(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Create config from a YAML file.  An empty file yields the defaults."""
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Expected a mapping at the top of {path}, got {type(data).__name__}")
        return cls.from_dict(data)

    def document_number(self, prefix: str, year: int, sequence: int) -> str:
        """Format a document number, e.g. ``PO-2024-0001``."""
        return f"{prefix}-{year}-{sequence:0{self.sequence_padding}d}"
