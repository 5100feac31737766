"""Integration test fixtures: LocalStack SSM, DynamoDB and SNS."""

from __future__ import annotations

import os
import sys

import boto3
import pytest
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

# Default LocalStack endpoint
LOCALSTACK_URL = os.environ.get("LOCALSTACK_URL", "http://localhost:4566")
REGION = "us-east-1"
TABLE_NAME = "tidemark-inttest-orders"


def _localstack_available() -> bool:
    """Check if LocalStack is reachable."""
    try:
        client = boto3.client(
            "ssm", region_name=REGION, endpoint_url=LOCALSTACK_URL,
            aws_access_key_id="test", aws_secret_access_key="test",
            config=Config(connect_timeout=1, retries={"max_attempts": 0}),
        )
        client.describe_parameters(MaxResults=1)
        return True
    except (BotoCoreError, ClientError):
        return False


skip_no_localstack = pytest.mark.skipif(
    not _localstack_available(),
    reason="LocalStack not available",
)


@pytest.fixture(scope="session", autouse=True)
def localstack_credentials():
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")


@pytest.fixture(scope="session")
def localstack_ssm():
    """SSM client pointing at LocalStack."""
    return boto3.client("ssm", region_name=REGION, endpoint_url=LOCALSTACK_URL)


@pytest.fixture(scope="session")
def localstack_ddb():
    """DynamoDB client pointing at LocalStack."""
    return boto3.client("dynamodb", region_name=REGION, endpoint_url=LOCALSTACK_URL)


@pytest.fixture(scope="session")
def topic_arn():
    sns = boto3.client("sns", region_name=REGION, endpoint_url=LOCALSTACK_URL)
    return sns.create_topic(Name="tidemark-inttest")["TopicArn"]


@pytest.fixture(scope="session")
def seeded_table(localstack_ddb, localstack_ssm):
    """Create the source table and seed its parameters via the seed script."""
    sys.path.insert(0, str(os.path.join(os.path.dirname(__file__), "..", "..", "scripts")))
    from seed_parameters import create_source_tables, seed_parameters

    create_source_tables(localstack_ddb, [TABLE_NAME])
    seed_parameters(localstack_ssm, [TABLE_NAME], overwrite=True)
    return TABLE_NAME
