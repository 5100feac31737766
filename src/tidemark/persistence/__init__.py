"""Pluggable persistence backends behind Protocol interfaces."""

from __future__ import annotations

from tidemark.core.config import AppSettings
from tidemark.core.deployment import TableDeployment
from tidemark.core.protocols import ICycleLease
from tidemark.persistence.dynamodb_backend import DynamoDBExportService
from tidemark.persistence.memory_backend import NullCycleLease
from tidemark.persistence.redis_backend import RedisCycleLease
from tidemark.persistence.sns_backend import SnsNotifier
from tidemark.persistence.ssm_backend import SsmParameterStore


def create_lease(settings: AppSettings) -> ICycleLease:
    if settings.lease_backend == "redis":
        return RedisCycleLease(
            host=settings.redis.host,
            port=settings.redis.port,
            db=settings.redis.db,
        )
    return NullCycleLease()


def create_persistence(settings: AppSettings | None = None):
    """Create wired-up shared backends from application settings.

    Returns:
        Tuple of (parameter_store, notifier, lease).
    """
    if settings is None:
        settings = AppSettings()

    parameters = SsmParameterStore(
        region=settings.aws.region,
        endpoint_url=settings.aws.endpoint_url,
    )

    notifier = SnsNotifier(
        topic_arn=settings.notification.topic_arn,
        region=settings.aws.region,
        endpoint_url=settings.aws.endpoint_url,
    )

    return parameters, notifier, create_lease(settings)


def create_export_service(deployment: TableDeployment, settings: AppSettings) -> DynamoDBExportService:
    """Export service for one table's deployment."""
    return DynamoDBExportService(
        deployment.table_name,
        deployment.bucket_name,
        bucket_prefix=deployment.bucket_prefix,
        bucket_owner=deployment.bucket_owner_account_id,
        export_format=deployment.export_format,
        region=settings.aws.region,
        endpoint_url=settings.aws.endpoint_url,
    )
