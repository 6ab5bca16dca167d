"""Recharge code inventory: import, normalization and allocation."""

from .formatter import normalize_code, normalize_codes, parse_code_block
from .service import (
    CodeImportResult,
    CodeInventoryService,
    EmptyImportBatchError,
    ImportBatchTooLargeError,
    InventoryError,
    InventorySummary,
    PlanNotFoundError,
)

__all__ = [
    "CodeImportResult",
    "CodeInventoryService",
    "EmptyImportBatchError",
    "ImportBatchTooLargeError",
    "InventoryError",
    "InventorySummary",
    "PlanNotFoundError",
    "normalize_code",
    "normalize_codes",
    "parse_code_block",
]
