"""Core async helpers shared by the sync engine and the CLI."""

from .async_utils import run_sync, settle

__all__ = ["run_sync", "settle"]
