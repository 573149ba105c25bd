"""HTTP clients for the source and target chat backends."""

__all__ = [
    "source_client",
    "target_client",
]
