"""SNS backend implementing INotifier."""

from __future__ import annotations

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from tidemark.core.exceptions import NotificationError
from tidemark.models.cycle import Notification


class SnsNotifier:
    """Production INotifier publishing JSON message bodies to an SNS topic."""

    def __init__(self, topic_arn: str, region: str = "us-east-1",
                 endpoint_url: str | None = None) -> None:
        self._topic_arn = topic_arn
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._client = boto3.client("sns", **kwargs)

    def publish(self, notification: Notification) -> None:
        try:
            self._client.publish(
                TopicArn=self._topic_arn,
                Subject=notification.subject,
                Message=notification.to_message(),
            )
        except (ClientError, BotoCoreError) as exc:
            raise NotificationError(
                f"SNS publish of {notification.event} for {notification.table!r} failed: {exc}"
            ) from exc
