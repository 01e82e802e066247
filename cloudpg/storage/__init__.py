"""Storage layer: pooled asyncpg access to AlloyDB / Cloud SQL."""

from cloudpg.storage.database import Database

__all__ = ["Database"]
