"""Data management: stores for facts, fetched pages and run history."""

from civic_pipeline.data_management.fact_store import FactStore
from civic_pipeline.data_management.page_store import PageStore
from civic_pipeline.data_management.run_history import RunHistoryStore

__all__ = ["FactStore", "PageStore", "RunHistoryStore"]
