"""
Data Generation Module
"""
from .generators import SalesDataGenerator, rows_to_frame

__all__ = [
    "SalesDataGenerator",
    "rows_to_frame",
]
