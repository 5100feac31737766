"""Seed the initial workflow parameters for each configured source table.

Usage:
    python scripts/seed_parameters.py --endpoint-url http://localhost:4566 --tables orders,payments
    python scripts/seed_parameters.py --create-tables   # LocalStack: also create the tables with PITR
    python scripts/seed_parameters.py --notifications   # create the topic and TIDEMARK_NOTIFY_* subscriptions
"""

from __future__ import annotations

import argparse
import json
from typing import Any

import boto3

from tidemark.core.config import NotificationConfig, load_settings
from tidemark.models.cycle import NotificationStatus
from tidemark.models.workflow import ParameterName, WorkflowAction, parameter_key

TOPIC_ARN_PARAMETER = "/dynamodb/export/notification/topic"


def create_source_tables(client: Any, tables: list[str]) -> None:
    """Create each source table with PITR enabled. Skips tables that already exist."""
    existing = client.list_tables().get("TableNames", [])

    for table_name in tables:
        if table_name in existing:
            print(f"  Table {table_name} already exists, skipping")
            continue
        client.create_table(
            TableName=table_name,
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        client.update_continuous_backups(
            TableName=table_name,
            PointInTimeRecoverySpecification={"PointInTimeRecoveryEnabled": True},
        )
        print(f"  Created table {table_name} with PITR")


def seed_parameters(ssm: Any, tables: list[str], overwrite: bool = False) -> list[str]:
    """Write ``workflow-action=RUN`` for every table.

    Existing values are kept unless ``overwrite`` is set, so re-running the
    script never un-pauses a paused table.

    Returns:
        Keys that were written.
    """
    written = []
    for table_name in tables:
        key = parameter_key(table_name, ParameterName.WORKFLOW_ACTION)
        if not overwrite:
            try:
                ssm.get_parameter(Name=key)
                print(f"  {key} already set, skipping")
                continue
            except ssm.exceptions.ParameterNotFound:
                pass
        ssm.put_parameter(Name=key, Value=WorkflowAction.RUN.value, Type="String", Overwrite=True)
        written.append(key)
        print(f"  Seeded {key}={WorkflowAction.RUN.value}")
    return written


def subscribe_status_endpoints(sns: Any, topic_arn: str, notification: NotificationConfig) -> list[str]:
    """Subscribe the configured endpoints, each filtered on the message ``status``.

    Success endpoints only receive ``SUCCESS`` notifications and the failure
    address only ``FAILED`` ones.

    Returns:
        Subscription ARNs, in the order the endpoints were subscribed.
    """
    endpoints = [
        ("sqs", notification.success_sqs_arn, NotificationStatus.SUCCESS),
        ("email", notification.success_email, NotificationStatus.SUCCESS),
        ("email", notification.failure_email, NotificationStatus.FAILED),
    ]
    arns = []
    for protocol, endpoint, status in endpoints:
        if not endpoint:
            continue
        resp = sns.subscribe(
            TopicArn=topic_arn,
            Protocol=protocol,
            Endpoint=endpoint,
            Attributes={
                "FilterPolicyScope": "MessageBody",
                "FilterPolicy": json.dumps({"status": [status.value]}),
            },
            ReturnSubscriptionArn=True,
        )
        arns.append(resp["SubscriptionArn"])
        print(f"  Subscribed {protocol}:{endpoint} to {status.value} notifications")
    return arns


def ensure_notification_topic(
    sns: Any, ssm: Any, notification: NotificationConfig, deployment_alias: str
) -> str:
    """Return the notification topic ARN, creating the topic unless an existing one is used.

    An existing topic comes from ``topic_arn`` or, when that is empty, from the
    shared ``/dynamodb/export/notification/topic`` parameter. A created topic
    is recorded in that parameter and gets the status-filtered subscriptions.
    """
    if notification.use_existing_topic:
        if notification.topic_arn:
            return notification.topic_arn
        return ssm.get_parameter(Name=TOPIC_ARN_PARAMETER)["Parameter"]["Value"]

    topic_arn = sns.create_topic(Name=f"{deployment_alias}-notification-topic")["TopicArn"]
    ssm.put_parameter(Name=TOPIC_ARN_PARAMETER, Value=topic_arn, Type="String", Overwrite=True)
    print(f"  Notification topic {topic_arn}")
    subscribe_status_endpoints(sns, topic_arn, notification)
    return topic_arn


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed workflow parameters for Tidemark")
    parser.add_argument("--tables", required=True, help="Comma-separated source table names")
    parser.add_argument("--endpoint-url", default=None, help="AWS endpoint (e.g. http://localhost:4566)")
    parser.add_argument("--region", default="us-east-1", help="AWS region")
    parser.add_argument("--overwrite", action="store_true", help="Reset workflow-action to RUN")
    parser.add_argument("--create-tables", action="store_true", help="Create the source tables with PITR")
    parser.add_argument(
        "--notifications", action="store_true",
        help="Create or reuse the notification topic from TIDEMARK_NOTIFY_* settings",
    )
    args = parser.parse_args()

    tables = [t.strip() for t in args.tables.split(",") if t.strip()]
    kwargs: dict[str, Any] = {"region_name": args.region}
    if args.endpoint_url:
        kwargs["endpoint_url"] = args.endpoint_url

    if args.create_tables:
        print("Creating tables...")
        create_source_tables(boto3.client("dynamodb", **kwargs), tables)

    ssm = boto3.client("ssm", **kwargs)
    print("Seeding parameters...")
    seed_parameters(ssm, tables, overwrite=args.overwrite)

    if args.notifications:
        settings = load_settings()
        print("Setting up notifications...")
        topic_arn = ensure_notification_topic(
            boto3.client("sns", **kwargs), ssm, settings.notification, settings.export.deployment_alias,
        )
        print(f"  Set TIDEMARK_NOTIFY_TOPIC_ARN={topic_arn}")

    print("Done!")


if __name__ == "__main__":
    main()
