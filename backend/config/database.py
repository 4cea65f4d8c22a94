"""
Database Configuration
======================

Centralized connection configuration for the API, the settlement worker
and the reconciler. Handles PostgreSQL and Redis connections with proper
env var handling.
"""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class PostgresConfig:
    """PostgreSQL connection configuration."""
    host: Optional[str] = None
    port: int = 5432
    user: str = 'kyro_user'
    password: str = ''
    database: str = 'kyro'
    min_size: int = 2
    max_size: int = 10
    dsn: Optional[str] = None

    @classmethod
    def from_env(cls, min_size: int = 2, max_size: int = 10) -> 'PostgresConfig':
        """
        Create config from environment variables.

        DATABASE_URL wins over the POSTGRES_* parts when set.
        """
        dsn = os.getenv('DATABASE_URL')
        if dsn:
            return cls(dsn=dsn, min_size=min_size, max_size=max_size)

        host = os.getenv('POSTGRES_HOST')
        if not host:
            raise ValueError("DATABASE_URL or POSTGRES_HOST environment variable is required")

        return cls(
            host=host,
            port=int(os.getenv('POSTGRES_PORT', '5432')),
            user=os.getenv('POSTGRES_USER', 'kyro_user'),
            password=os.getenv('POSTGRES_PASSWORD', ''),
            database=os.getenv('POSTGRES_DB', 'kyro'),
            min_size=min_size,
            max_size=max_size,
        )

    def to_asyncpg_kwargs(self) -> dict:
        """Convert to asyncpg.create_pool kwargs."""
        if self.dsn:
            return {'dsn': self.dsn, 'min_size': self.min_size, 'max_size': self.max_size}
        return {
            'host': self.host,
            'port': self.port,
            'user': self.user,
            'password': self.password,
            'database': self.database,
            'min_size': self.min_size,
            'max_size': self.max_size,
        }


@dataclass
class RedisConfig:
    """Redis connection configuration."""
    url: str

    @classmethod
    def from_env(cls) -> 'RedisConfig':
        """Create config from environment variables."""
        url = os.getenv('REDIS_URL')
        if not url:
            raise ValueError("REDIS_URL environment variable is required")

        return cls(url=url)


def get_postgres_config(min_size: int = 2, max_size: int = 10) -> PostgresConfig:
    """Get PostgreSQL configuration from environment."""
    return PostgresConfig.from_env(min_size=min_size, max_size=max_size)


def get_redis_config() -> RedisConfig:
    """Get Redis configuration from environment."""
    return RedisConfig.from_env()


async def create_postgres_pool(min_size: int = 2, max_size: int = 10):
    """Create PostgreSQL connection pool from environment config."""
    import asyncpg
    config = get_postgres_config(min_size=min_size, max_size=max_size)
    return await asyncpg.create_pool(**config.to_asyncpg_kwargs())


async def create_job_queue():
    """Create and connect Redis job queue from environment config."""
    from services.job_queue import JobQueue
    config = get_redis_config()
    queue = JobQueue(config.url)
    await queue.connect()
    return queue
