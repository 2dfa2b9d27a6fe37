import logging
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from softpoints.config import Settings
from softpoints.core.exceptions import QueueDeliveryError

logger = logging.getLogger(__name__)


class AwsService:
    """SQS 전송 (boto3 동기 클라이언트, 호출 측에서 스레드로 실행)"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._sqs = None

    @property
    def sqs(self):
        # boto3 client 는 thread-safe 이므로 하나를 재사용
        if self._sqs is None:
            options: Dict[str, Any] = {"region_name": self.settings.AWS_REGION}
            if self.settings.SQS_ENDPOINT_URL:
                options["endpoint_url"] = self.settings.SQS_ENDPOINT_URL
            if self.settings.AWS_SQS_ACCESS_KEY_ID and self.settings.AWS_SQS_SECRET_ACCESS_KEY:
                options["aws_access_key_id"] = self.settings.AWS_SQS_ACCESS_KEY_ID
                options["aws_secret_access_key"] = self.settings.AWS_SQS_SECRET_ACCESS_KEY
            self._sqs = boto3.client("sqs", **options)
        return self._sqs

    def _send(self, params: Dict[str, Any]) -> Dict[str, Any]:
        queue_url = params["QueueUrl"]
        try:
            response = self.sqs.send_message(**params)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            raise QueueDeliveryError(f"SQS rejected message for {queue_url}: {code}") from e
        except BotoCoreError as e:
            raise QueueDeliveryError(f"SQS unreachable for {queue_url}: {e}") from e
        logger.debug(f"Sent SQS message {response.get('MessageId')} to {queue_url}")
        return response

    def send_sqs_message(
        self, queue_url: str, message_body: str, delay_seconds: int = 0
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"QueueUrl": queue_url, "MessageBody": message_body}
        if delay_seconds > 0:
            params["DelaySeconds"] = delay_seconds
        return self._send(params)

    def send_sqs_fifo_message(
        self,
        queue_url: str,
        message_body: str,
        message_group_id: str,
        message_deduplication_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "QueueUrl": queue_url,
            "MessageBody": message_body,
            "MessageGroupId": message_group_id,
        }
        if message_deduplication_id:
            params["MessageDeduplicationId"] = message_deduplication_id
        return self._send(params)
