# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for provider exceptions."""

import pytest

from cloudlibs_gce.exceptions import (
    ApplianceError,
    CloudProviderError,
    ComputeError,
    ConfigurationError,
    FailoverError,
    InvalidUriError,
    MessagingError,
    ObjectNotFoundError,
    OperationError,
    RemoteServiceError,
    RetryExhaustedError,
    StorageError,
    ValidationError,
)


class TestCloudProviderError:
    """Tests for the base error."""

    def test_basic_error(self):
        error = CloudProviderError("Something went wrong")

        assert str(error) == "Something went wrong"
        assert error.message == "Something went wrong"
        assert error.retry_after is None

    @pytest.mark.parametrize("cls", [
        ConfigurationError,
        ValidationError,
        RemoteServiceError,
        StorageError,
        MessagingError,
        ComputeError,
        ApplianceError,
        FailoverError,
    ])
    def test_hierarchy(self, cls):
        """Every provider error is a CloudProviderError."""
        assert issubclass(cls, CloudProviderError)


class TestSpecificErrors:
    """Tests for errors carrying extra context."""

    def test_object_not_found(self):
        error = ObjectNotFoundError("instances/bigip-1", bucket="state")

        assert isinstance(error, StorageError)
        assert error.status == 404
        assert "state/instances/bigip-1" in str(error)

    def test_invalid_uri_is_validation_error(self):
        error = InvalidUriError("http://x")

        assert isinstance(error, ValidationError)
        assert error.uri == "http://x"

    def test_operation_error(self):
        error = OperationError("op-123", [{"code": "RESOURCE_NOT_READY"}])

        assert isinstance(error, ComputeError)
        assert error.errors == [{"code": "RESOURCE_NOT_READY"}]
        assert "op-123" in str(error)

    def test_retry_exhausted(self):
        cause = ComputeError("not ready", status=400)
        error = RetryExhaustedError("gave up", attempts=5, last_error=cause)

        assert error.attempts == 5
        assert error.last_error is cause
