"""Common utility functions."""

from .clock import business_time_zone, local_civil_now
from .money import CENT, compute_split, format_money, to_money

__all__ = [
    "business_time_zone",
    "local_civil_now",
    "CENT",
    "compute_split",
    "format_money",
    "to_money",
]
