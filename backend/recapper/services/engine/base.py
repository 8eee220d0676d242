"""
Transcoding engine protocol.

The engine owns a transient working storage of named byte entries.
Callers write an input entry, transform it into an output entry, read
the output back and delete both entries.
"""

from pathlib import Path
from typing import Callable, Protocol, runtime_checkable

# Signature: (fraction in [0, 1]) -> None
EngineProgressCallback = Callable[[float], None]


@runtime_checkable
class TranscodingEngine(Protocol):
    """
    Protocol for transcoding engines.

    Implementations must make load() idempotent and safe for concurrent
    callers: initialization happens at most once.
    """

    @property
    def loaded(self) -> bool:
        """True once load() has completed."""
        ...

    async def load(self) -> None:
        """Initialize the engine.

        Raises:
            EngineLoadError: If the engine cannot be initialized
        """
        ...

    async def write_input(self, name: str, data: bytes | Path) -> None:
        """Store input bytes (or a copy of a file) under a name."""
        ...

    async def transform(
        self,
        input_name: str,
        filter_expression: str,
        max_output_seconds: float,
        output_name: str,
        on_progress: EngineProgressCallback | None = None,
        expected_output_seconds: float | None = None,
    ) -> None:
        """Apply a video filter, strip audio and truncate the output.

        Raises:
            TranscodeError: If the transform fails
        """
        ...

    async def read_output(self, name: str) -> bytes:
        """Read a stored entry.

        Raises:
            TranscodeError: If the entry does not exist
        """
        ...

    async def delete_entry(self, name: str) -> None:
        """Remove a stored entry (no-op when absent)."""
        ...

    def entries(self) -> list[str]:
        """Names currently held in working storage."""
        ...

    async def dispose(self) -> None:
        """Release the engine and its working storage."""
        ...
