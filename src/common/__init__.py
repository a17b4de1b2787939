"""
Common utilities for the site data pipeline.

Modules:
- envelope: AES-256-GCM envelope codec (IV || ciphertext)
- github: GitHub REST client with pagination and retries
- nulls: recursive null normalisation
- config: environment / SSM configuration helpers
"""

__all__ = [
    "config",
    "envelope",
    "github",
    "nulls",
]
