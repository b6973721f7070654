"""Engine configuration — iteration limits and prompt context bounds."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class EngineConfig:
    """Controls how a request is resolved against the generator."""

    # Iterate-directives accepted per node before giving up
    max_iterations: int = 3

    # Ancestor opening tags included around the target in the first prompt
    ancestor_levels: int = 5

    # Seconds between "Generating…" progress ticks
    progress_interval: float = 0.1

    @classmethod
    def from_settings(cls) -> "EngineConfig":
        from visualedit.config import settings

        return cls(
            max_iterations=settings.max_iterations,
            ancestor_levels=settings.ancestor_levels,
            progress_interval=settings.progress_interval,
        )
