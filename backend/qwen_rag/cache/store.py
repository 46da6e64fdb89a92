"""JSON-file key/value cache of prompt → generated command pairs.

The cache is an explicit object handed to whoever needs it, never module
state.  It loads once on construction and writes the whole file back after
every mutation.

File format::

    { "entries": [ { "prompt": "...", "command": "..." }, ... ] }
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class CacheEntry(BaseModel):
    prompt:  str
    command: str


class _CacheFile(BaseModel):
    entries: List[CacheEntry] = Field(default_factory=list)


class PromptCache:
    """Prompt-keyed command cache persisted as JSON.

    Args:
        path: Cache file location.  ``~`` is expanded; parent directories
              are created on first save.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path).expanduser()
        self._entries: List[CacheEntry] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, prompt: str) -> Optional[str]:
        """Return the first command cached for *prompt*, or None."""
        for entry in self._entries:
            if entry.prompt == prompt:
                return entry.command
        return None

    def __contains__(self, prompt: object) -> bool:
        return any(entry.prompt == prompt for entry in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    # ------------------------------------------------------------------
    # Mutation (each call persists immediately)
    # ------------------------------------------------------------------

    def put(self, prompt: str, command: str) -> None:
        """Append a prompt → command pair and save."""
        self._entries.append(CacheEntry(prompt=prompt, command=command))
        self._save()
        logger.debug("[PromptCache] Stored command for prompt (%d entries)", len(self._entries))

    def clear(self) -> None:
        """Remove every entry and save."""
        self._entries = []
        self._save()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> List[CacheEntry]:
        if not self._path.exists():
            return []
        try:
            raw = self._path.read_text(encoding="utf-8")
            return _CacheFile.model_validate_json(raw).entries
        except (OSError, ValidationError) as exc:
            logger.warning("[PromptCache] Ignoring unreadable cache %s: %s", self._path, exc)
            return []

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = _CacheFile(entries=self._entries)
        self._path.write_text(payload.model_dump_json(indent=2), encoding="utf-8")
