import logging
from abc import ABC, abstractmethod

from softpoints.core.exceptions import PayoutInitiationError
from softpoints.models.withdrawal import WithdrawalRequest
from softpoints.providers.queue.events import PayoutRequestedEvent
from softpoints.services.event_publisher import PAYOUT, EventPublisher

logger = logging.getLogger(__name__)


class PayoutGateway(ABC):
    """외부 지급 처리 시작점. 시작에 실패하면 PayoutInitiationError 를 던집니다."""

    @abstractmethod
    async def initiate(self, withdrawal: WithdrawalRequest) -> None: ...


class QueuePayoutGateway(PayoutGateway):
    """지급 요청을 SQS 로 넘기고 결과는 관리자 complete/fail 로 돌아옵니다."""

    def __init__(self, publisher: EventPublisher):
        self.publisher = publisher

    async def initiate(self, withdrawal: WithdrawalRequest) -> None:
        event = PayoutRequestedEvent(
            withdrawal_id=withdrawal.id,
            user_id=withdrawal.user_id,
            amount=withdrawal.amount,
            net_amount=withdrawal.net_amount,
            currency=withdrawal.currency,
            payout_method=withdrawal.payout_method,
            payment_details=withdrawal.payment_details or {},
        )
        delivered = await self.publisher.publish(PAYOUT, event)
        if not delivered:
            raise PayoutInitiationError(
                f"Payout for withdrawal {withdrawal.id} could not be queued"
            )
        logger.info(f"Queued payout for withdrawal {withdrawal.id}")
