"""Core reconciliation logic: results, filters, migration and blocking engines."""

__all__ = [
    "channel_upsert",
    "config",
    "context",
    "dependencies",
    "engine",
    "executor",
    "filters",
    "migrator",
    "result",
    "run_logging",
]
