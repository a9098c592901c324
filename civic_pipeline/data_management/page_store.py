"""Page storage adapter for fetched council pages.

A full run stores every fetched page here; an incremental run reprocesses the
stored pages without touching the network.

Features:
- In-memory storage with optional JSON persistence
- Keyed by URL, one latest copy per page
- Content hash so unchanged pages are counted separately
- Thread-safe operations with asyncio locks
"""

import asyncio
import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger


class PageStore:
    """
    Storage adapter for fetched page persistence.

    Data structure:
    {
        "https://...": {
            "url": "...",
            "html": "...",
            "title": "...",
            "content_hash": "...",
            "fetched_at": "...",
            "stored_at": "..."
        },
        ...
    }
    """

    def __init__(self, persistence_path: Optional[str] = None):
        """
        Initialize page store.

        Args:
            persistence_path: Optional path to JSON file for persistence.
                            If None, storage is memory-only.
        """
        self._pages: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        self.persistence_path = Path(persistence_path) if persistence_path else None
        self.logger = logger.bind(component="PageStore")

        if self.persistence_path and self.persistence_path.exists():
            self._load_from_file()

    async def save_pages(self, pages: List[Dict[str, Any]]) -> Dict[str, int]:
        """
        Save fetched pages, replacing older copies of the same URL.

        Args:
            pages: Page dictionaries with at least url and html

        Returns:
            Dictionary with save statistics:
            - saved: Number of new pages
            - updated: Number of pages whose content changed
            - unchanged: Number of pages refetched with identical content
            - total: Total pages after save
        """
        async with self._lock:
            saved_count = 0
            updated_count = 0
            unchanged_count = 0

            for page in pages:
                url = page.get("url", "")
                if not url:
                    self.logger.warning("Page missing URL, skipping")
                    continue

                html = page.get("html") or ""
                content_hash = hashlib.sha256(html.encode("utf-8")).hexdigest()
                now = datetime.now(timezone.utc).isoformat()

                existing = self._pages.get(url)
                if existing is not None and existing.get("content_hash") == content_hash:
                    existing["fetched_at"] = page.get("fetched_at") or now
                    unchanged_count += 1
                    continue

                self._pages[url] = {
                    **page,
                    "html": html,
                    "content_hash": content_hash,
                    "fetched_at": page.get("fetched_at") or now,
                    "stored_at": now,
                }
                if existing is None:
                    saved_count += 1
                else:
                    updated_count += 1

            if self.persistence_path:
                self._save_to_file()

            stats = {
                "saved": saved_count,
                "updated": updated_count,
                "unchanged": unchanged_count,
                "total": len(self._pages),
            }
            self.logger.info("Saved pages", **stats)
            return stats

    async def get_page(self, url: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            page = self._pages.get(url)
            return dict(page) if page is not None else None

    async def list_pages(
        self,
        since: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        List stored pages, newest first.

        Args:
            since: ISO timestamp - only return pages stored after this time
            limit: Maximum number of pages to return

        Returns:
            Page dictionaries sorted by stored_at (newest first)
        """
        async with self._lock:
            pages = list(self._pages.values())

            if since:
                since_dt = datetime.fromisoformat(since.replace("Z", "+00:00"))
                pages = [
                    p for p in pages
                    if datetime.fromisoformat(p["stored_at"].replace("Z", "+00:00")) > since_dt
                ]

            pages.sort(key=lambda p: p.get("stored_at", ""), reverse=True)

            if limit:
                pages = pages[:limit]

            return [dict(p) for p in pages]

    async def count(self) -> int:
        async with self._lock:
            return len(self._pages)

    def _save_to_file(self) -> None:
        """Save current storage to JSON file (synchronous)."""
        if not self.persistence_path:
            return

        try:
            self.persistence_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.persistence_path, "w") as f:
                json.dump(self._pages, f, indent=2, default=str)
            self.logger.debug(f"Persisted to {self.persistence_path}")
        except OSError as e:
            self.logger.error(f"Failed to persist to file: {e}")

    def _load_from_file(self) -> None:
        """Load storage from JSON file (synchronous)."""
        try:
            with open(self.persistence_path, "r") as f:
                self._pages = json.load(f)
            self.logger.info(f"Loaded {len(self._pages)} pages from {self.persistence_path}")
        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to load from file: {e}")
            self._pages = {}
