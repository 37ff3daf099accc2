import json
import redis
from urllib.parse import quote_plus

# Logger
from app.logging.utils import get_app_logger
logger = get_app_logger("redis_wrapper")

# Settings
from app.config.settings import GatewayConfigs
configs = GatewayConfigs()

REDIS_URL = configs.REDIS_URL


class RedisKeyProcessor:
    """Builds namespaced Redis keys for gateway state."""

    OTP_PREFIX = "otp"
    VERIFIED_PREFIX = "verified"

    @staticmethod
    def _safe(part: str) -> str:
        """Encode dynamic key segments so Redis keys contain only URL-safe chars."""
        return quote_plus(str(part), safe='')

    def otp_key(self, phone_key: str | None = None) -> str:
        """``otp:{phone}``, or the ``otp:*`` pattern when no phone is given."""
        if phone_key:
            return f"{self.OTP_PREFIX}:{self._safe(phone_key)}"
        return f"{self.OTP_PREFIX}:*"

    def verified_key(self, phone_key: str) -> str:
        return f"{self.VERIFIED_PREFIX}:{self._safe(phone_key)}"

    def phone_from_key(self, key: str) -> str:
        return key.split(":", 1)[1]


class RedisJSONWrapper:
    def __init__(self, redis_uri=REDIS_URL, database=None, client=None):
        if client is not None:
            self.redis_client = client
            self.connected = True
            return
        if database is not None:
            redis_uri = f"{redis_uri}/{database}"
        try:
            # bounded so a stalled Redis fails the request instead of hanging it
            self.redis_client = redis.from_url(
                redis_uri,
                socket_timeout=configs.REDIS_SOCKET_TIMEOUT,
                socket_connect_timeout=configs.REDIS_CONNECT_TIMEOUT,
            )
            self.redis_client.ping()
            self.connected = True
        except redis.exceptions.RedisError as e:
            logger.error(f"Failed to connect to Redis at {redis_uri}: {e}")
            self.redis_client = None
            self.connected = False

    def set(self, key, data):
        self.redis_client.set(key, json.dumps(data))

    def set_with_ttl(self, key, data, ttl_seconds: int):
        """Set a key with a TTL (in seconds). Stores data as JSON string.

        Falls back to a plain set when ttl_seconds is not positive.
        """
        value = json.dumps(data)
        if isinstance(ttl_seconds, int) and ttl_seconds > 0:
            # SETEX attaches the expiry atomically with the value
            self.redis_client.setex(key, ttl_seconds, value)
        else:
            self.redis_client.set(key, value)

    def get(self, key):
        data = self.redis_client.get(key)
        if data:
            return json.loads(data)
        return None

    def exists(self, key) -> bool:
        return self.redis_client.exists(key) > 0

    def delete(self, key):
        return self.redis_client.delete(key) > 0

    def compare_and_delete(self, key, expected) -> bool:
        """
        Delete *key* only if its JSON value still equals *expected*.

        Uses a WATCH/MULTI optimistic transaction; a concurrent write to the
        key aborts the transaction and the comparison is re-run against the
        new value.

        Returns:
            True if this call deleted the key
        """
        with self.redis_client.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(key)
                    raw = pipe.get(key)
                    if raw is None or json.loads(raw) != expected:
                        pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.delete(key)
                    pipe.execute()
                    return True
                except redis.exceptions.WatchError:
                    logger.info("compare_and_delete retry after concurrent write")
                    continue

    def keys(self, pattern='*'):
        return [
            key.decode('utf-8') if isinstance(key, bytes) else key
            for key in self.redis_client.scan_iter(match=pattern)
        ]
