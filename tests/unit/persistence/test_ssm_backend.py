"""Unit tests for SsmParameterStore using moto."""

from __future__ import annotations

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from botocore.stub import Stubber
from moto import mock_aws

from tidemark.core.exceptions import (
    ParameterNotFoundError,
    ParameterThrottledError,
    SdkClientError,
    TidemarkError,
)
from tidemark.persistence.ssm_backend import SsmParameterStore

KEY = "/dynamodb/export/orders/workflow-action"


@pytest.fixture
def store():
    with mock_aws():
        yield SsmParameterStore(region="us-east-1")


class TestGetPut:
    def test_round_trip(self, store):
        store.put(KEY, "RUN")
        assert store.get(KEY) == "RUN"

    def test_put_overwrites(self, store):
        store.put(KEY, "RUN")
        store.put(KEY, "PAUSE")
        assert store.get(KEY) == "PAUSE"

    def test_missing_key_raises_not_found(self, store):
        with pytest.raises(ParameterNotFoundError) as exc_info:
            store.get(KEY)
        assert exc_info.value.key == KEY


class TestDelete:
    def test_removes_key(self, store):
        store.put(KEY, "RUN")
        store.delete(KEY)
        with pytest.raises(ParameterNotFoundError):
            store.get(KEY)

    def test_missing_key_raises_not_found(self, store):
        with pytest.raises(ParameterNotFoundError):
            store.delete(KEY)


class TestErrorTranslation:
    @pytest.fixture
    def stubbed(self):
        store = SsmParameterStore(region="us-east-1")
        with Stubber(store._client) as stubber:
            yield store, stubber

    def test_throttling(self, stubbed):
        store, stubber = stubbed
        stubber.add_client_error("get_parameter", service_error_code="ThrottlingException")
        with pytest.raises(ParameterThrottledError):
            store.get(KEY)

    def test_too_many_updates(self, stubbed):
        store, stubber = stubbed
        stubber.add_client_error("put_parameter", service_error_code="TooManyUpdates")
        with pytest.raises(ParameterThrottledError):
            store.put(KEY, "RUN")

    def test_internal_error_is_transient(self, stubbed):
        store, stubber = stubbed
        stubber.add_client_error("get_parameter", service_error_code="InternalServerError", http_status_code=500)
        with pytest.raises(SdkClientError):
            store.get(KEY)

    def test_other_errors_are_not_retryable(self, stubbed):
        store, stubber = stubbed
        stubber.add_client_error("put_parameter", service_error_code="AccessDeniedException")
        with pytest.raises(TidemarkError) as exc_info:
            store.put(KEY, "RUN")
        assert type(exc_info.value) is TidemarkError
        assert isinstance(exc_info.value.__cause__, ClientError)

    def test_connection_errors_are_transient(self, monkeypatch):
        store = SsmParameterStore(region="us-east-1")

        def _fail(**kwargs):
            raise EndpointConnectionError(endpoint_url="http://localhost:4566")

        monkeypatch.setattr(store._client, "get_parameter", _fail)
        with pytest.raises(SdkClientError):
            store.get(KEY)
