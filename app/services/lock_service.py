import redis
from app.utils.retry import redis_retry
from app.utils.settings import REDIS_URL
from app.utils.logging import get_logger

logger = get_logger(__name__)

#LUA porownaj i usun, atomicity
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis wykonuje skrypt lua atomowo - nikt nie wcisnie sie miedzy GET a DEL


class LockService:
    """
    -krotka blokada wariantu na czas sprawdzenia dostepnosci + zapisu rezerwacji
    -zwalnianie locka tylko przez wlasciciela
    -atomowosc przy pomocy lua
    """

    def __init__(self, url: str | None = None):
        self.redis = redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _variant_key(variant_id: int) -> str:
        return f"variant:{variant_id}:lock"

    @redis_retry()
    def acquire_variant_lock(self, variant_id: int, owner: str, ttl: int) -> bool:
        key = self._variant_key(variant_id)
        logger.info(f"Acquire lock {key} for {owner}")
        #SET variant:1:lock "owner" NX EX ttl
        return bool(self.redis.set(
            name=key,
            value=owner,
            nx=True, #tylko jesli klucz nie istnieje
            ex=ttl, #wygasa sam, nie trzeba recznie czyscic
        ))

    @redis_retry()
    def release_variant_lock(self, variant_id: int, owner: str) -> bool:
        key = self._variant_key(variant_id)
        logger.info(f"Release lock {key} for {owner}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, owner)
        return bool(res)
