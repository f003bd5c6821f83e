"""Persistence for goodturkey."""

from goodturkey.storage.db import SiteStore

__all__ = ["SiteStore"]
