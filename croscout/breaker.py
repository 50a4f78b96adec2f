import time


class CircuitBreakerOpen(Exception):
    pass


class CircuitBreaker:
    """
    Redis-backed circuit breaker, shared by every worker of the API.

    States:
      - CLOSED: allow traffic, count failures
      - OPEN: block traffic for reset_timeout seconds
      - HALF_OPEN: after timeout, allow a probe request

    Without a redis client the breaker always allows traffic.
    """

    def __init__(
        self,
        name: str,
        redis,
        failure_threshold: int = 5,
        reset_timeout_seconds: int = 30,
    ):
        self.name = name
        self.redis = redis
        self.failure_threshold = failure_threshold
        self.reset_timeout_seconds = reset_timeout_seconds

    def _key_state(self):
        return f"cb:{self.name}:state"

    def _key_failures(self):
        return f"cb:{self.name}:failures"

    def _key_opened_at(self):
        return f"cb:{self.name}:opened_at"

    async def _get_state(self) -> str:
        state = await self.redis.get(self._key_state())
        return state or "CLOSED"

    async def allow_request(self) -> None:
        if self.redis is None:
            return

        state = await self._get_state()

        if state == "OPEN":
            opened_at = await self.redis.get(self._key_opened_at())
            if not opened_at:
                await self.close()
                return

            if (time.time() - float(opened_at)) >= self.reset_timeout_seconds:
                await self.redis.set(self._key_state(), "HALF_OPEN")
                return

            raise CircuitBreakerOpen(f"Circuit breaker OPEN for {self.name}")

    async def record_success(self) -> None:
        if self.redis is None:
            return
        if await self._get_state() != "CLOSED" or await self.redis.get(self._key_failures()):
            await self.close()

    async def record_failure(self) -> None:
        if self.redis is None:
            return

        state = await self._get_state()

        # a failed probe re-opens immediately
        if state == "HALF_OPEN":
            await self.open()
            return

        failures = await self.redis.incr(self._key_failures())
        if failures == 1:
            await self.redis.expire(self._key_failures(), 60)

        if failures >= self.failure_threshold:
            await self.open()

    async def open(self) -> None:
        now = str(time.time())
        pipe = self.redis.pipeline()
        pipe.set(self._key_state(), "OPEN")
        pipe.set(self._key_opened_at(), now)
        pipe.expire(self._key_state(), self.reset_timeout_seconds + 30)
        pipe.expire(self._key_opened_at(), self.reset_timeout_seconds + 30)
        await pipe.execute()

    async def close(self) -> None:
        pipe = self.redis.pipeline()
        pipe.set(self._key_state(), "CLOSED")
        pipe.delete(self._key_failures())
        pipe.delete(self._key_opened_at())
        pipe.expire(self._key_state(), 3600)
        await pipe.execute()

    async def status(self) -> dict:
        if self.redis is None:
            return {"name": self.name, "state": "DISABLED", "failures": 0}
        failures = await self.redis.get(self._key_failures())
        return {
            "name": self.name,
            "state": await self._get_state(),
            "failures": int(failures or 0),
        }
