"""SSM Parameter Store backend implementing IParameterStore."""

from __future__ import annotations

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from tidemark.core.exceptions import (
    ParameterNotFoundError,
    ParameterThrottledError,
    SdkClientError,
    TidemarkError,
)

_THROTTLING_CODES = {"ThrottlingException", "TooManyUpdates"}
_TRANSIENT_CODES = {"InternalServerError", "InternalFailure", "ServiceUnavailable", "RequestTimeout"}


def _translate(exc: Exception, operation: str, key: str) -> TidemarkError:
    """Map a boto error onto the store's typed errors."""
    if isinstance(exc, BotoCoreError):
        return SdkClientError(f"SSM {operation} failed for {key!r}: {exc}")
    code = exc.response.get("Error", {}).get("Code", "")
    if code == "ParameterNotFound":
        return ParameterNotFoundError(key)
    if code in _THROTTLING_CODES:
        return ParameterThrottledError(f"SSM {operation} throttled for {key!r}: {exc}")
    if code in _TRANSIENT_CODES:
        return SdkClientError(f"SSM {operation} failed for {key!r}: {exc}")
    return TidemarkError(f"SSM {operation} failed for {key!r}: {exc}")


class SsmParameterStore:
    """Production IParameterStore backed by SSM String parameters."""

    def __init__(self, region: str = "us-east-1", endpoint_url: str | None = None) -> None:
        self._region = region
        self._endpoint_url = endpoint_url
        kwargs: dict = {"region_name": region}
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._client = boto3.client("ssm", **kwargs)

    def get(self, key: str) -> str:
        try:
            resp = self._client.get_parameter(Name=key)
            return resp["Parameter"]["Value"]
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, "GetParameter", key) from exc

    def put(self, key: str, value: str) -> None:
        try:
            self._client.put_parameter(Name=key, Value=value, Type="String", Overwrite=True)
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, "PutParameter", key) from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete_parameter(Name=key)
        except (ClientError, BotoCoreError) as exc:
            raise _translate(exc, "DeleteParameter", key) from exc
