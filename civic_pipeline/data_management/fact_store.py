"""Fact storage adapter for persisted council facts and source verifications.

Features:
- In-memory storage with optional JSON persistence
- O(1) lookup by fact_id
- URL index over both source_url and file_url for provenance queries
- Per-URL verification records shared by every fact citing that URL
- Thread-safe operations with asyncio locks

A fact record is a plain dict. Columns written by the extraction pipeline:
fact_id, content_hash, data_type, title, description, department, amount,
value, unit, fact_date, source_url, source_domain, scraped_at, status,
archived. Columns written by the citation service: file_url,
parent_page_url, source_title, citation_metadata, extraction_confidence.
"""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger

# Columns owned by the citation service; re-extraction never overwrites them
CITATION_COLUMNS = (
    "file_url",
    "parent_page_url",
    "source_title",
    "citation_metadata",
    "extraction_confidence",
)


class FactStore:
    """
    Storage adapter for fact persistence.

    Uses in-memory storage with optional JSON file persistence. A database
    backend would implement the same async interface.

    Data structure:
    {
        "facts": {
            "fact_id": {"fact_id": "...", "source_url": "...", ...},
            ...
        },
        "verifications": {
            "https://...": {"accessible": true, "status": 200, ...},
            ...
        }
    }

    Indexes:
    - _url_index: url -> set[fact_id] (source_url and file_url)
    """

    def __init__(self, persistence_path: Optional[str] = None):
        """
        Initialize fact store.

        Args:
            persistence_path: Optional path to JSON file for persistence.
                            If None, storage is memory-only.
        """
        self._facts: Dict[str, Dict[str, Any]] = {}
        self._verifications: Dict[str, Dict[str, Any]] = {}
        self._url_index: Dict[str, set[str]] = {}

        self._lock = asyncio.Lock()
        self.persistence_path = Path(persistence_path) if persistence_path else None
        self.logger = logger.bind(component="FactStore")

        if self.persistence_path and self.persistence_path.exists():
            self._load_from_file()

        self.logger.info(
            "FactStore initialized",
            persistence_enabled=self.persistence_path is not None
        )

    async def save_facts(self, facts: List[Dict[str, Any]]) -> Dict[str, int]:
        """
        Insert or refresh facts.

        A fact whose fact_id already exists is refreshed in place: extraction
        columns are overwritten, citation columns are preserved.

        Args:
            facts: Fact dictionaries, each with a fact_id

        Returns:
            Dictionary with save statistics:
            - saved: Number of new facts
            - updated: Number of existing facts refreshed
            - skipped: Number without a fact_id
            - total: Total facts in the store after save
        """
        async with self._lock:
            saved_count = 0
            updated_count = 0
            skipped_count = 0
            now = datetime.now(timezone.utc).isoformat()

            for fact in facts:
                fact_id = fact.get("fact_id")
                if not fact_id:
                    self.logger.warning("Fact missing fact_id, skipping")
                    skipped_count += 1
                    continue

                existing = self._facts.get(fact_id)
                if existing is not None:
                    self._unindex(fact_id, existing)
                    refreshed = {
                        **existing,
                        **{k: v for k, v in fact.items() if k not in CITATION_COLUMNS},
                        "updated_at": now,
                    }
                    self._facts[fact_id] = refreshed
                    self._index(fact_id, refreshed)
                    updated_count += 1
                    continue

                record = {
                    "status": "active",
                    "archived": False,
                    **fact,
                    "stored_at": now,
                    "updated_at": now,
                }
                self._facts[fact_id] = record
                self._index(fact_id, record)
                saved_count += 1

            if self.persistence_path:
                self._save_to_file()

            stats = {
                "saved": saved_count,
                "updated": updated_count,
                "skipped": skipped_count,
                "total": len(self._facts),
            }
            self.logger.info("Saved facts", **stats)
            return stats

    async def get_fact(self, fact_id: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve a single fact by ID.

        Returns:
            A copy of the fact dictionary if found, None otherwise
        """
        async with self._lock:
            fact = self._facts.get(fact_id)
            return dict(fact) if fact is not None else None

    async def update_fact(
        self,
        fact_id: str,
        fields: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """
        Overwrite columns of an existing fact.

        Args:
            fact_id: Fact identifier
            fields: Columns to set

        Returns:
            The updated fact, or None if the fact does not exist
        """
        async with self._lock:
            fact = self._facts.get(fact_id)
            if fact is None:
                return None

            self._unindex(fact_id, fact)
            fact.update(fields)
            fact["updated_at"] = datetime.now(timezone.utc).isoformat()
            self._index(fact_id, fact)

            if self.persistence_path:
                self._save_to_file()

            return dict(fact)

    async def get_facts_by_url(self, url: str) -> List[Dict[str, Any]]:
        """Facts whose source_url or file_url equals ``url``."""
        async with self._lock:
            return [
                dict(self._facts[fact_id])
                for fact_id in sorted(self._url_index.get(url, ()))
                if fact_id in self._facts
            ]

    async def list_facts(
        self,
        active_only: bool = True,
        include_archived: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        List stored facts.

        Args:
            active_only: Only facts with status "active"
            include_archived: Include facts flagged archived

        Returns:
            Copies of matching fact dictionaries
        """
        async with self._lock:
            return [
                dict(fact)
                for fact in self._facts.values()
                if (not active_only or fact.get("status", "active") == "active")
                and (include_archived or not fact.get("archived", False))
            ]

    async def list_urls(self) -> List[str]:
        """Every distinct source_url and file_url referenced by a fact."""
        async with self._lock:
            return sorted(url for url, ids in self._url_index.items() if ids)

    async def save_verification(self, url: str, verification: Dict[str, Any]) -> None:
        """Store the latest verification result for ``url``."""
        async with self._lock:
            self._verifications[url] = dict(verification)
            if self.persistence_path:
                self._save_to_file()

    async def get_verification(self, url: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            verification = self._verifications.get(url)
            return dict(verification) if verification is not None else None

    async def get_all_verifications(self) -> Dict[str, Dict[str, Any]]:
        async with self._lock:
            return {url: dict(v) for url, v in self._verifications.items()}

    async def get_storage_stats(self) -> Dict[str, Any]:
        """
        Get overall storage statistics.

        Returns:
            Dictionary with storage statistics
        """
        async with self._lock:
            return {
                "total_facts": len(self._facts),
                "active_facts": sum(
                    1 for f in self._facts.values() if f.get("status", "active") == "active"
                ),
                "indexed_urls": len(self._url_index),
                "verified_urls": len(self._verifications),
                "persistence_enabled": self.persistence_path is not None,
                "persistence_path": str(self.persistence_path) if self.persistence_path else None,
            }

    def _fact_urls(self, fact: Dict[str, Any]) -> Iterable[str]:
        for column in ("source_url", "file_url"):
            url = fact.get(column)
            if url:
                yield url

    def _index(self, fact_id: str, fact: Dict[str, Any]) -> None:
        for url in self._fact_urls(fact):
            self._url_index.setdefault(url, set()).add(fact_id)

    def _unindex(self, fact_id: str, fact: Dict[str, Any]) -> None:
        for url in self._fact_urls(fact):
            ids = self._url_index.get(url)
            if ids is not None:
                ids.discard(fact_id)
                if not ids:
                    del self._url_index[url]

    def _save_to_file(self) -> None:
        """Save current storage to JSON file (synchronous)."""
        if not self.persistence_path:
            return

        try:
            self.persistence_path.parent.mkdir(parents=True, exist_ok=True)

            data = {
                "facts": self._facts,
                "verifications": self._verifications,
            }

            with open(self.persistence_path, "w") as f:
                json.dump(data, f, indent=2, default=str)

            self.logger.debug(f"Persisted to {self.persistence_path}")

        except OSError as e:
            self.logger.error(f"Failed to persist to file: {e}")

    def _load_from_file(self) -> None:
        """Load storage from JSON file and rebuild indexes (synchronous)."""
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            with open(self.persistence_path, "r") as f:
                data = json.load(f)

            self._facts = data.get("facts", {})
            self._verifications = data.get("verifications", {})
            self._rebuild_indexes()

            self.logger.info(
                "Loaded fact store from disk",
                path=str(self.persistence_path),
                facts=len(self._facts),
                verifications=len(self._verifications),
            )

        except (OSError, json.JSONDecodeError) as e:
            self.logger.error(f"Failed to load from file: {e}")
            self._facts = {}
            self._verifications = {}
            self._url_index = {}

    def _rebuild_indexes(self) -> None:
        """Rebuild the URL index from storage (called after loading from file)."""
        self._url_index = {}
        for fact_id, fact in self._facts.items():
            self._index(fact_id, fact)
