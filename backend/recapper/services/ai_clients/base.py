"""
Base AI client protocol for script generation providers.

Defines the interface the pipeline depends on, so the Gemini client can
be swapped for a fake in tests or another provider later.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass
class AIClientConfig:
    """
    Configuration for AI client instances.

    The API key is not part of the configuration: it is supplied with
    every call and never stored.

    Attributes:
        base_url: API endpoint URL
        timeout: Request timeout in seconds
        max_retries: Total attempts when the service is overloaded
    """

    base_url: str
    timeout: float = 60.0
    max_retries: int = 3


@runtime_checkable
class ScriptGenerator(Protocol):
    """
    Protocol for narration script generators.

    Example:
        async def narrate(generator: ScriptGenerator) -> str:
            return await generator.generate("a chase scene", api_key)
    """

    async def generate(self, description: str, api_key: str) -> str:
        """
        Generate a narration script for a video description.

        Returns:
            Script text with surrounding whitespace removed

        Raises:
            ScriptGenerationError: If generation fails
        """
        ...


class BaseAIClientImpl(ABC):
    """
    Abstract base class for AI client implementations.

    Provides the async context manager protocol.

    Subclasses must implement:
        - generate()
        - close()
    """

    def __init__(self, config: AIClientConfig):
        self.config = config

    @abstractmethod
    async def generate(self, description: str, api_key: str) -> str:
        """Generate a narration script."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the client and release resources."""
        pass

    async def __aenter__(self) -> "BaseAIClientImpl":
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        await self.close()
