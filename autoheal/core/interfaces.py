"""
Abstract seams for the external collaborators of the healing loop.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from autoheal.core.types import RunOutput


class TextGenerator(ABC):
    """Opaque text-generation service."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        """
        Generate free text for a prompt.

        Args:
            prompt: User prompt
            max_tokens: Token budget (defaults to settings)
            temperature: Sampling temperature (defaults to settings)
            system_prompt: Optional system message

        Returns:
            Generated text with reasoning blocks removed
        """
        pass

    @abstractmethod
    async def generate_test_script(self, prompt: str) -> str:
        """Generate a test file body with markdown fences stripped."""
        pass


class ArtifactRunner(ABC):
    """Executes one artifact file under the browser test runner."""

    @abstractmethod
    async def run(self, artifact_path: Path) -> RunOutput:
        """Run the artifact and capture its output regardless of exit code."""
        pass
