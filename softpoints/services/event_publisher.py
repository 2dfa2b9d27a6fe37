"""
Outbound domain events (notifications, wallet sync, payouts, dead letters).

Each channel maps to an SQS queue URL in settings. A channel without a URL
is logged and skipped so local runs work without AWS. FIFO queues (".fifo")
are grouped by user so per-user events keep their order.
"""

import asyncio
import logging
from typing import Optional, Set

from pydantic import BaseModel

from softpoints.config import Settings
from softpoints.core.exceptions import QueueDeliveryError
from softpoints.services.aws_service import AwsService

logger = logging.getLogger(__name__)

NOTIFICATION = "notification"
WALLET_SYNC = "wallet_sync"
PAYOUT = "payout"
REWARD_DEADLETTER = "reward_deadletter"


class EventPublisher:
    def __init__(self, aws_service: AwsService, settings: Settings):
        self.aws_service = aws_service
        self.settings = settings
        # fire-and-forget 태스크가 GC 되지 않도록 참조 유지
        self._tasks: Set[asyncio.Task] = set()

    def _queue_url(self, channel: str) -> Optional[str]:
        return {
            NOTIFICATION: self.settings.SQS_NOTIFICATION_QUEUE_URL,
            WALLET_SYNC: self.settings.SQS_WALLET_SYNC_QUEUE_URL,
            PAYOUT: self.settings.SQS_PAYOUT_QUEUE_URL,
            REWARD_DEADLETTER: self.settings.SQS_REWARD_DEADLETTER_QUEUE_URL,
        }.get(channel)

    async def publish(self, channel: str, event: BaseModel) -> bool:
        """이벤트 발행. 성공 여부를 반환하며 예외를 던지지 않습니다."""
        queue_url = self._queue_url(channel)
        body = event.model_dump_json()
        if not queue_url:
            logger.info(f"No queue configured for {channel}, skipping event: {body}")
            return False

        try:
            # boto3 는 블로킹 호출이므로 워커 스레드에서 실행
            if queue_url.endswith(".fifo"):
                # 사용자별 순서 보장, 중복 제거 ID 는 이벤트가 가진 경우에만
                await asyncio.to_thread(
                    self.aws_service.send_sqs_fifo_message,
                    queue_url,
                    body,
                    str(getattr(event, "user_id", channel)),
                    getattr(event, "deduplication_id", None),
                )
            else:
                await asyncio.to_thread(self.aws_service.send_sqs_message, queue_url, body)
            return True
        except QueueDeliveryError as e:
            logger.warning(f"Failed to publish {type(event).__name__} to {channel}: {e}")
            return False

    def publish_nowait(self, channel: str, event: BaseModel) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self.publish(channel, event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """진행 중인 fire-and-forget 발행을 모두 기다림 (종료 시/테스트용)"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
