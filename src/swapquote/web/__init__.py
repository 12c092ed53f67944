"""Web boundary layer: read-only HTTP access to quote aggregation.

This layer never builds, signs or submits transactions.
"""

__all__ = [
    "contracts",
    "controllers",
]
