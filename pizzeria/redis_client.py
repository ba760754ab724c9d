"""
Redis client wrapper with connection pooling, retry logic, and error handling.
"""
import redis
import time
import random
import json
import logging
from typing import Optional, Any, Callable, List
from redis.exceptions import (
    ConnectionError,
    TimeoutError,
    RedisError,
    AuthenticationError
)

from pizzeria.config import Config
from pizzeria.exceptions import RedisConnectionError

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis client with connection pooling and retry logic"""

    def __init__(self, client: Optional[redis.Redis] = None):
        self.pool: Optional[redis.ConnectionPool] = None
        self.client: Optional[redis.Redis] = client
        if client is None:
            self._connect()

    def _connect(self):
        """Initialize Redis connection pool"""
        try:
            options = dict(
                max_connections=Config.REDIS_MAX_CONNECTIONS,
                socket_connect_timeout=Config.REDIS_SOCKET_CONNECT_TIMEOUT,
                socket_timeout=Config.REDIS_SOCKET_TIMEOUT,
                retry_on_timeout=Config.REDIS_RETRY_ON_TIMEOUT,
                decode_responses=True,
            )
            if Config.REDIS_SSL:
                # ElastiCache uses self-signed certs
                options["ssl_cert_reqs"] = None

            self.pool = redis.ConnectionPool.from_url(Config.redis_url(), **options)
            self.client = redis.Redis(connection_pool=self.pool)

            # Test connection
            self.client.ping()

        except (ConnectionError, AuthenticationError) as e:
            raise RedisConnectionError(f"Failed to connect to Redis: {e}")

    def _retry_with_backoff(
        self,
        func: Callable,
        max_retries: int = 3,
        initial_backoff: float = 0.1,
        max_backoff: float = 2.0
    ) -> Any:
        """
        Execute function with exponential backoff retry.

        Args:
            func: Function to execute
            max_retries: Maximum number of retry attempts
            initial_backoff: Initial backoff delay in seconds
            max_backoff: Maximum backoff delay in seconds

        Returns:
            Result of function execution

        Raises:
            RedisConnectionError: If all retries fail
        """
        backoff = initial_backoff

        for attempt in range(max_retries):
            try:
                return func()
            except (ConnectionError, TimeoutError) as e:
                if attempt == max_retries - 1:
                    raise RedisConnectionError(f"Redis operation failed after {max_retries} retries: {e}")

                # Exponential backoff with jitter
                jitter = random.uniform(0, backoff * 0.1)
                time.sleep(backoff + jitter)
                backoff = min(backoff * 2, max_backoff)

                if self.pool is not None:
                    try:
                        self._connect()
                    except RedisConnectionError as reconnect_error:
                        logger.warning(f"Reconnect attempt {attempt + 1} failed: {reconnect_error}")

            except RedisError as e:
                # Non-retryable errors
                raise RedisConnectionError(f"Redis error: {e}")

    def get(self, key: str) -> Optional[str]:
        """Get value from Redis"""
        return self._retry_with_backoff(lambda: self.client.get(key))

    def set(self, key: str, value: Any, ex: Optional[int] = None) -> bool:
        """Set value in Redis with optional TTL"""
        return self._retry_with_backoff(lambda: self.client.set(key, value, ex=ex))

    def delete(self, *keys: str) -> int:
        """Delete one or more keys"""
        return self._retry_with_backoff(lambda: self.client.delete(*keys))

    def exists(self, *keys: str) -> int:
        """Check if keys exist"""
        return self._retry_with_backoff(lambda: self.client.exists(*keys))

    def lpush(self, key: str, *values: str) -> int:
        """Prepend values to a list"""
        return self._retry_with_backoff(lambda: self.client.lpush(key, *values))

    def lrange(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        """Read a slice of a list"""
        return self._retry_with_backoff(lambda: self.client.lrange(key, start, end))

    def incrby(self, key: str, amount: int = 1) -> int:
        """Increment an integer counter"""
        return self._retry_with_backoff(lambda: self.client.incrby(key, amount))

    def get_json(self, key: str) -> Any:
        """Get and decode a JSON value; None when missing or unreadable"""
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding unreadable JSON at {key}: {e}")
            return None

    @staticmethod
    def encode_json(value: Any) -> str:
        return json.dumps(value, separators=(",", ":"))

    def set_json(self, key: str, value: Any, ex: Optional[int] = None) -> bool:
        """Encode a value as JSON and store it"""
        return self.set(key, self.encode_json(value), ex=ex)

    def transaction(self, queue: Callable[[Any], None]) -> List[Any]:
        """
        Run commands as one MULTI/EXEC block.

        `queue` receives the pipeline and adds commands to it. Nothing is sent
        until every command is queued, so a failure while queueing leaves the
        keyspace untouched.
        """
        def _execute():
            with self.client.pipeline(transaction=True) as pipe:
                queue(pipe)
                return pipe.execute()
        return self._retry_with_backoff(_execute)

    def ping(self) -> bool:
        """Test Redis connection"""
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def close(self):
        """Close connection pool"""
        if self.pool:
            self.pool.disconnect()


# Global Redis client instance
_redis_client: Optional[RedisClient] = None

def get_redis_client() -> RedisClient:
    """Get or create Redis client instance (singleton)"""
    global _redis_client
    if _redis_client is None:
        _redis_client = RedisClient()
    return _redis_client
