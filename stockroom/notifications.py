"""
Stockroom — 変更通知 (Redis Pub/Sub)

コミット済みの変更を Redis に発行し、ダッシュボードや一覧のキャッシュに
再読み込みを促す。Pub/Sub は fire-and-forget なので、発行に失敗しても
警告を残すだけで主たる処理は成功のまま返す。
"""

import json
import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

PRODUCT_CHANNEL = "product_events"
ORDER_CHANNEL = "order_events"
CUSTOMER_CHANNEL = "customer_events"


async def publish(
    redis: aioredis.Redis | None,
    channel: str,
    event_type: str,
    data: dict,
) -> None:
    if redis is None:
        return
    try:
        await redis.publish(channel, json.dumps({
            "event_type": event_type,
            "data": data,
        }, default=str))
    except RedisError:
        logger.warning("Failed to publish %s on %s", event_type, channel, exc_info=True)
