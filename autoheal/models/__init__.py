"""
Text generation clients.
"""

from autoheal.models.generation_client import (
    GenerationClient,
    strip_code_fences,
    strip_thinking,
)

__all__ = ["GenerationClient", "strip_code_fences", "strip_thinking"]
