"""
Prompt templates for the vision calls.

A template file holds two sections:

    ===SYSTEM===
    ...system prompt...
    ===USER===
    ...user prompt...

Files are read lazily, once per process. A missing or malformed file falls
back to the built-in template of the caller.
"""
import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

SYSTEM_MARKER = "===SYSTEM==="
USER_MARKER = "===USER==="


class PromptFormatError(ValueError):
    """Raised when a prompt file is missing its markers or has empty sections."""


@dataclass(frozen=True)
class PromptParts:
    system: str
    user: str

    @property
    def length(self) -> int:
        return len(self.system) + len(self.user)


def parse_prompt_file(contents: str, name: str = "prompt") -> PromptParts:
    system_idx = contents.find(SYSTEM_MARKER)
    user_idx = contents.find(USER_MARKER)
    if system_idx == -1 or user_idx == -1 or user_idx <= system_idx:
        raise PromptFormatError(
            f"Invalid {name} format. Expected markers: {SYSTEM_MARKER} and {USER_MARKER}"
        )
    system = contents[system_idx + len(SYSTEM_MARKER) : user_idx].strip()
    user = contents[user_idx + len(USER_MARKER) :].strip()
    if not system or not user:
        raise PromptFormatError(f"Invalid {name} format. SYSTEM/USER sections must not be empty.")
    return PromptParts(system=system, user=user)


class PromptLoader:
    """One-time lazy load of a prompt file; concurrent first callers share a single read."""

    def __init__(self, path: Path, fallback: PromptParts) -> None:
        self._path = path
        self._fallback = fallback
        self._parts: PromptParts | None = None
        self._lock = asyncio.Lock()

    async def get(self) -> PromptParts:
        if self._parts is not None:
            return self._parts
        async with self._lock:
            if self._parts is None:
                self._parts = await self._load()
        return self._parts

    async def _load(self) -> PromptParts:
        try:
            raw = await asyncio.to_thread(self._path.read_text, encoding="utf-8")
            return parse_prompt_file(raw, self._path.name)
        except (OSError, UnicodeDecodeError, PromptFormatError) as exc:
            logger.warning("Failed to read/parse prompt file at %s. Using fallback prompts: %s", self._path, exc)
            return self._fallback
