"""
Security components for autoheal.
"""

from .sanitizer import (
    DataSanitizer,
    RedactionMethod,
    SensitiveDataPattern,
    sanitize_dict,
    sanitize_string,
)

__all__ = [
    "DataSanitizer",
    "SensitiveDataPattern",
    "RedactionMethod",
    "sanitize_dict",
    "sanitize_string",
]
