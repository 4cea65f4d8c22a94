"""
Shared helpers for the PostgreSQL repositories
"""
import json
from typing import Any, Optional

import asyncpg

# Anything asyncpg can raise for a failed query or a dead connection
DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def load_json(value: Any) -> Optional[dict]:
    """JSONB comes back as text unless a codec is registered on the pool."""
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return value
    return json.loads(value)
