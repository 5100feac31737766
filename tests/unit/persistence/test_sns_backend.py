"""Unit tests for SnsNotifier using botocore Stubber."""

from __future__ import annotations

import json

import pytest
from botocore.stub import Stubber

from tidemark.core.exceptions import NotificationError
from tidemark.models.cycle import Notification, NotificationEvent, NotificationStatus
from tidemark.persistence.sns_backend import SnsNotifier

TOPIC = "arn:aws:sns:us-east-1:123456789012:tidemark"


@pytest.fixture
def notifier():
    return SnsNotifier(TOPIC, region="us-east-1")


def _notification() -> Notification:
    return Notification(
        status=NotificationStatus.SUCCESS,
        event=NotificationEvent.INCREMENTAL_EXPORT,
        table="orders",
        message="Incremental export completed",
        details={"export_id": "arn:export/1"},
    )


class TestPublish:
    def test_publishes_json_body(self, notifier):
        notification = _notification()
        with Stubber(notifier._client) as stubber:
            stubber.add_response(
                "publish",
                {"MessageId": "m-1"},
                {
                    "TopicArn": TOPIC,
                    "Subject": "[SUCCESS] INCREMENTAL_EXPORT orders",
                    "Message": notification.to_message(),
                },
            )
            notifier.publish(notification)
            stubber.assert_no_pending_responses()

        body = json.loads(notification.to_message())
        assert body["status"] == "SUCCESS"
        assert body["details"] == {"export_id": "arn:export/1"}

    def test_wraps_client_errors(self, notifier):
        with Stubber(notifier._client) as stubber:
            stubber.add_client_error("publish", service_error_code="NotFound")
            with pytest.raises(NotificationError, match="orders"):
                notifier.publish(_notification())


class TestSubject:
    def test_subject_is_capped(self):
        notification = _notification().model_copy(update={"table": "t" * 200})
        assert len(notification.subject) == 100
