"""
Name: S3 Durable Store Tests

Responsibilities:
  - Validate adapter uses boto3 client correctly
  - Validate SDK errors are mapped to typed storage errors
  - Avoid real network calls (mocked client)
"""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from asset_portal.infrastructure.services.retry import create_retry_decorator
from asset_portal.infrastructure.storage import (
    S3Config,
    S3DurableStore,
    StorageConfigurationError,
    StoragePermissionError,
    StorageRequestError,
    StorageUnavailableError,
)

pytestmark = pytest.mark.unit


def _client_error(code: str, status: int, operation: str = "GetObject"):
    return ClientError(
        {
            "Error": {"Code": code, "Message": code},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


def _make_store(mock_client: MagicMock, retry_decorator=None) -> S3DurableStore:
    """Create a store with an injected mock S3 client."""
    return S3DurableStore(
        S3Config(
            bucket="bucket",
            access_key="key",
            secret_key="secret",
            region="us-east-1",
            endpoint_url="http://minio:9000",
        ),
        client=mock_client,
        retry_decorator=retry_decorator or (lambda func: func),
    )


def test_get_uses_get_object():
    mock_client = MagicMock()
    mock_body = MagicMock()
    mock_body.read.return_value = b'{"a":1}'
    mock_client.get_object.return_value = {"Body": mock_body}

    store = _make_store(mock_client)

    assert store.get("cache/jobs.json") == b'{"a":1}'
    mock_client.get_object.assert_called_once_with(
        Bucket="bucket", Key="cache/jobs.json"
    )
    mock_body.read.assert_called_once()


def test_get_missing_key_returns_none():
    mock_client = MagicMock()
    mock_client.get_object.side_effect = _client_error("NoSuchKey", 404)

    store = _make_store(mock_client)

    assert store.get("cache/missing.json") is None


def test_delete_uses_delete_object():
    mock_client = MagicMock()
    store = _make_store(mock_client)

    store.delete("cache/activity-persistence.json")

    mock_client.delete_object.assert_called_once_with(
        Bucket="bucket", Key="cache/activity-persistence.json"
    )


def test_delete_access_denied_maps_to_permission_error():
    mock_client = MagicMock()
    mock_client.delete_object.side_effect = _client_error(
        "AccessDenied", 403, "DeleteObject"
    )
    store = _make_store(mock_client)

    with pytest.raises(StoragePermissionError):
        store.delete("cache/activity-persistence.json")


def test_put_uses_put_object_with_json_content_type():
    mock_client = MagicMock()
    store = _make_store(mock_client)

    store.put("cache/jobs.json", b"[]")

    mock_client.put_object.assert_called_once_with(
        Bucket="bucket",
        Key="cache/jobs.json",
        Body=b"[]",
        ContentType="application/json",
    )


def test_list_keys_walks_all_pages():
    mock_client = MagicMock()
    paginator = MagicMock()
    paginator.paginate.return_value = [
        {"Contents": [{"Key": "assets/dashboards/d1.json"}]},
        {"Contents": [{"Key": "assets/dashboards/d2.json"}]},
        {},
    ]
    mock_client.get_paginator.return_value = paginator

    store = _make_store(mock_client)

    assert store.list_keys("assets/dashboards/") == [
        "assets/dashboards/d1.json",
        "assets/dashboards/d2.json",
    ]
    mock_client.get_paginator.assert_called_once_with("list_objects_v2")
    paginator.paginate.assert_called_once_with(
        Bucket="bucket", Prefix="assets/dashboards/"
    )


def test_access_denied_maps_to_permission_error():
    mock_client = MagicMock()
    mock_client.put_object.side_effect = _client_error("AccessDenied", 403, "PutObject")

    store = _make_store(mock_client)

    with pytest.raises(StoragePermissionError):
        store.put("cache/jobs.json", b"[]")


def test_throttling_maps_to_unavailable_error():
    mock_client = MagicMock()
    mock_client.get_object.side_effect = _client_error("SlowDown", 503)

    store = _make_store(mock_client)

    with pytest.raises(StorageUnavailableError):
        store.get("cache/jobs.json")


def test_endpoint_down_maps_to_unavailable_error():
    mock_client = MagicMock()
    mock_client.get_object.side_effect = EndpointConnectionError(
        endpoint_url="http://minio:9000"
    )

    store = _make_store(mock_client)

    with pytest.raises(StorageUnavailableError):
        store.get("cache/jobs.json")


def test_unknown_client_error_maps_to_request_error():
    mock_client = MagicMock()
    mock_client.get_object.side_effect = _client_error("InvalidRequest", 400)

    store = _make_store(mock_client)

    with pytest.raises(StorageRequestError):
        store.get("cache/jobs.json")


def test_transient_failures_are_retried():
    mock_client = MagicMock()
    mock_body = MagicMock()
    mock_body.read.return_value = b"[]"
    mock_client.get_object.side_effect = [
        _client_error("SlowDown", 503),
        {"Body": mock_body},
    ]

    store = _make_store(
        mock_client,
        retry_decorator=create_retry_decorator(
            max_attempts=3, base_delay=0, max_delay=0.01
        ),
    )

    assert store.get("cache/jobs.json") == b"[]"
    assert mock_client.get_object.call_count == 2


def test_permission_errors_are_not_retried():
    mock_client = MagicMock()
    mock_client.get_object.side_effect = _client_error("AccessDenied", 403)

    store = _make_store(
        mock_client,
        retry_decorator=create_retry_decorator(
            max_attempts=3, base_delay=0, max_delay=0.01
        ),
    )

    with pytest.raises(StoragePermissionError):
        store.get("cache/jobs.json")
    assert mock_client.get_object.call_count == 1


def test_empty_key_is_rejected():
    store = _make_store(MagicMock())

    with pytest.raises(StorageRequestError):
        store.get("  ")


@pytest.mark.parametrize(
    "config",
    [
        S3Config(bucket=""),
        S3Config(bucket="bucket", access_key="key", secret_key=""),
    ],
)
def test_invalid_config_fails_fast(config):
    with pytest.raises(StorageConfigurationError):
        S3DurableStore(config, client=MagicMock(), retry_decorator=lambda f: f)
