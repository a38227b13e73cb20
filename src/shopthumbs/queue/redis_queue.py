"""Durable work queue on Redis lists with acknowledge-after-success.

Keys for a queue named `image_queue`:
- image_queue: pending messages (producer LPUSH, consumer takes from the right)
- image_queue:processing: received but not yet acknowledged
- image_queue:dead: payloads that exhausted their attempts or could not be decoded
- image_queue:attempts: hash of delivery counts keyed by payload digest

A delivery stays on the processing list until it is acknowledged or rejected, so
a worker crash never loses it: recover_inflight() moves it back to pending on the
next start. Identical payloads share one attempt counter.
"""

import hashlib
from dataclasses import dataclass
from typing import Literal

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger()

RejectOutcome = Literal["requeued", "dead_lettered"]


@dataclass(frozen=True)
class Delivery:
    """One received message.

    Attributes:
        body: Raw message bytes exactly as enqueued
        attempts: Number of times this payload has been delivered (1 on first receipt)
    """

    body: bytes
    attempts: int

    @property
    def digest(self) -> str:
        return hashlib.sha256(self.body).hexdigest()


class JobQueue:
    """Reliable FIFO queue backed by Redis lists."""

    def __init__(self, redis: Redis, name: str = "image_queue", max_attempts: int = 3):
        """Initialize queue.

        Args:
            redis: redis.asyncio client created with decode_responses=False
            name: Pending list key; auxiliary keys derive from it
            max_attempts: Deliveries allowed before a retryable failure is dead-lettered
        """
        self.redis = redis
        self.name = name
        self.max_attempts = max_attempts
        self.processing_key = f"{name}:processing"
        self.dead_letter_key = f"{name}:dead"
        self.attempts_key = f"{name}:attempts"

    async def enqueue(self, body: bytes) -> None:
        await self.redis.lpush(self.name, body)

    async def enqueue_many(self, bodies: list[bytes]) -> None:
        """Push several messages atomically, preserving their order."""
        if not bodies:
            return
        await self.redis.lpush(self.name, *bodies)

    async def receive(self, timeout: int = 5) -> Delivery | None:
        """Block until a message is available and move it to the processing list.

        Args:
            timeout: Seconds to block before returning None

        Returns:
            Delivery, or None if nothing arrived within the timeout
        """
        body = await self.redis.blmove(
            self.name, self.processing_key, timeout, src="RIGHT", dest="LEFT"
        )
        if body is None:
            return None
        digest = hashlib.sha256(body).hexdigest()
        attempts = await self.redis.hincrby(self.attempts_key, digest, 1)
        return Delivery(body=body, attempts=int(attempts))

    async def ack(self, delivery: Delivery) -> None:
        """Acknowledge a successfully processed delivery."""
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.lrem(self.processing_key, 1, delivery.body)
            pipe.hdel(self.attempts_key, delivery.digest)
            await pipe.execute()

    async def reject(self, delivery: Delivery, requeue: bool = True) -> RejectOutcome:
        """Remove a failed delivery from processing and requeue or dead-letter it.

        The delivery is requeued only when `requeue` is True and its attempt
        budget is not exhausted.

        Returns:
            "requeued" or "dead_lettered"
        """
        if requeue and delivery.attempts < self.max_attempts:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.lrem(self.processing_key, 1, delivery.body)
                pipe.lpush(self.name, delivery.body)
                await pipe.execute()
            return "requeued"

        await self.dead_letter(delivery)
        return "dead_lettered"

    async def dead_letter(self, delivery: Delivery) -> None:
        """Park a delivery on the dead-letter list."""
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.lrem(self.processing_key, 1, delivery.body)
            pipe.lpush(self.dead_letter_key, delivery.body)
            pipe.hdel(self.attempts_key, delivery.digest)
            await pipe.execute()
        logger.warning("queue.dead_lettered", queue=self.name, attempts=delivery.attempts)

    async def recover_inflight(self) -> int:
        """Move every unacknowledged delivery back to the pending list.

        Must only run while no consumer of this queue is active.

        Returns:
            Number of recovered messages
        """
        recovered = 0
        while await self.redis.lmove(self.processing_key, self.name, src="LEFT", dest="RIGHT"):
            recovered += 1
        return recovered

    async def requeue_dead_letters(self, limit: int | None = None) -> int:
        """Move dead-lettered payloads back to pending with a fresh attempt budget.

        Args:
            limit: Maximum number of messages to move (None = all)

        Returns:
            Number of requeued messages
        """
        moved = 0
        while limit is None or moved < limit:
            body = await self.redis.lmove(self.dead_letter_key, self.name, src="RIGHT", dest="LEFT")
            if body is None:
                break
            await self.redis.hdel(self.attempts_key, hashlib.sha256(body).hexdigest())
            moved += 1
        if moved:
            logger.info("queue.dead_letters.requeued", queue=self.name, count=moved)
        return moved

    async def dead_letters(self, limit: int = 100) -> list[bytes]:
        """Peek at dead-lettered payloads, oldest first."""
        bodies = await self.redis.lrange(self.dead_letter_key, -limit, -1)
        return list(reversed(bodies))

    async def depth(self) -> dict[str, int]:
        """Current length of the pending, processing and dead-letter lists."""
        async with self.redis.pipeline(transaction=False) as pipe:
            pipe.llen(self.name)
            pipe.llen(self.processing_key)
            pipe.llen(self.dead_letter_key)
            pending, processing, dead = await pipe.execute()
        return {"pending": pending, "processing": processing, "dead": dead}
