"""DynamoDB backend implementing IExportService with point-in-time exports."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from tidemark.core.exceptions import (
    ExportServiceError,
    InvalidExportTimeError,
    SdkClientError,
    TidemarkError,
)
from tidemark.models.exports import ExportJob, ExportStatus, ExportType, ExportWindow, PitrStatus
from tidemark.models.workflow import to_utc

EXPORT_VIEW_TYPE = "NEW_AND_OLD_IMAGES"

_TRANSIENT_CODES = {
    "InternalServerError",
    "ServiceUnavailable",
    "ThrottlingException",
    "RequestLimitExceeded",
    "ProvisionedThroughputExceededException",
}


def _translate(exc: Exception, operation: str) -> TidemarkError:
    """Map a boto error onto the export service's typed errors."""
    if isinstance(exc, BotoCoreError):
        return SdkClientError(f"DynamoDB {operation} failed: {exc}")
    code = exc.response.get("Error", {}).get("Code", "")
    if code == "InvalidExportTimeException":
        return InvalidExportTimeError(f"DynamoDB {operation} rejected the export time: {exc}")
    if code in _TRANSIENT_CODES:
        return SdkClientError(f"DynamoDB {operation} failed: {exc}")
    return ExportServiceError(f"DynamoDB {operation} failed: {exc}")


def _job_from_description(desc: dict[str, Any]) -> ExportJob:
    export_type = ExportType(desc.get("ExportType", ExportType.FULL_EXPORT))
    export_time = desc.get("ExportTime")
    return ExportJob(
        export_id=desc["ExportArn"],
        export_type=export_type,
        status=ExportStatus(desc.get("ExportStatus", ExportStatus.IN_PROGRESS)),
        export_time=to_utc(export_time) if isinstance(export_time, datetime) else None,
        failure_message=desc.get("FailureMessage", ""),
    )


class DynamoDBExportService:
    """Production IExportService exporting one table to S3."""

    def __init__(self, table_name: str, bucket: str, *, bucket_prefix: str = "",
                 bucket_owner: str | None = None, export_format: str = "DYNAMODB_JSON",
                 region: str = "us-east-1", endpoint_url: str | None = None) -> None:
        self._table_name = table_name
        self._bucket = bucket
        self._bucket_prefix = bucket_prefix
        self._bucket_owner = bucket_owner
        self._export_format = export_format
        self._table_arn: str | None = None
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._client = boto3.client("dynamodb", **kwargs)

    def ensure_table_exists(self) -> str:
        try:
            resp = self._client.describe_table(TableName=self._table_name)
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, "DescribeTable") from exc
        self._table_arn = resp["Table"]["TableArn"]
        return self._table_arn

    def describe_pitr(self) -> PitrStatus:
        try:
            resp = self._client.describe_continuous_backups(TableName=self._table_name)
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, "DescribeContinuousBackups") from exc
        pitr = resp["ContinuousBackupsDescription"].get("PointInTimeRecoveryDescription", {})
        earliest = pitr.get("EarliestRestorableDateTime")
        latest = pitr.get("LatestRestorableDateTime")
        return PitrStatus(
            enabled=pitr.get("PointInTimeRecoveryStatus") == "ENABLED",
            earliest_restorable_time=to_utc(earliest) if earliest else None,
            latest_restorable_time=to_utc(latest) if latest else None,
        )

    def _export_kwargs(self) -> dict[str, Any]:
        table_arn = self._table_arn or self.ensure_table_exists()
        kwargs: dict[str, Any] = {
            "TableArn": table_arn,
            "S3Bucket": self._bucket,
            "ExportFormat": self._export_format,
        }
        if self._bucket_prefix:
            kwargs["S3Prefix"] = self._bucket_prefix
        if self._bucket_owner:
            kwargs["S3BucketOwner"] = self._bucket_owner
        return kwargs

    def start_full_export(self, export_time: datetime) -> ExportJob:
        kwargs = self._export_kwargs()
        try:
            resp = self._client.export_table_to_point_in_time(
                ExportTime=to_utc(export_time),
                ExportType=ExportType.FULL_EXPORT.value,
                **kwargs,
            )
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, "ExportTableToPointInTime") from exc
        return _job_from_description(resp["ExportDescription"])

    def start_incremental_export(self, window: ExportWindow) -> ExportJob:
        kwargs = self._export_kwargs()
        try:
            resp = self._client.export_table_to_point_in_time(
                ExportType=ExportType.INCREMENTAL_EXPORT.value,
                IncrementalExportSpecification={
                    "ExportFromTime": to_utc(window.export_from_time),
                    "ExportToTime": to_utc(window.export_to_time),
                    "ExportViewType": EXPORT_VIEW_TYPE,
                },
                **kwargs,
            )
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, "ExportTableToPointInTime") from exc
        return _job_from_description(resp["ExportDescription"])

    def describe_export(self, export_id: str) -> ExportJob:
        try:
            resp = self._client.describe_export(ExportArn=export_id)
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, "DescribeExport") from exc
        return _job_from_description(resp["ExportDescription"])
