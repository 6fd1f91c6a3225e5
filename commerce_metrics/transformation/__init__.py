"""
Data Transformation Module
"""
from .normalizers import (
    NormalizationResult,
    normalize,
    normalize_batch,
    normalize_frame,
    normalize_inventory,
    normalize_purchase,
)

__all__ = [
    "NormalizationResult",
    "normalize",
    "normalize_batch",
    "normalize_frame",
    "normalize_inventory",
    "normalize_purchase",
]
