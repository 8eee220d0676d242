"""
AI Clients package for script generation.

Usage:
    from recapper.services.ai_clients import GeminiScriptClient, ScriptGenerator

    async def narrate(generator: ScriptGenerator, description: str, key: str) -> str:
        return await generator.generate(description, key)

    async with GeminiScriptClient.from_settings(settings) as client:
        script = await client.generate("a chase scene", api_key)
"""

from recapper.services.ai_clients.base import (
    AIClientConfig,
    BaseAIClientImpl,
    ScriptGenerator,
)
from recapper.services.ai_clients.gemini_client import (
    GeminiScriptClient,
    GenerationOutcome,
    OutcomeKind,
)

__all__ = [
    # Protocol and base classes
    "ScriptGenerator",
    "BaseAIClientImpl",
    "AIClientConfig",
    # Implementation
    "GeminiScriptClient",
    "GenerationOutcome",
    "OutcomeKind",
]
