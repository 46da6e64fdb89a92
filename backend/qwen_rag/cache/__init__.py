"""Persistent prompt → command result cache."""
from .store import CacheEntry, PromptCache

__all__ = ["CacheEntry", "PromptCache"]
