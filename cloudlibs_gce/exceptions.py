# Copyright 2026 Firefly Software Solutions Inc
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Custom exceptions for the Google Cloud provider.

All exceptions inherit from CloudProviderError so that the cluster manager
invoking the provider can catch every provider failure with one clause.

Exception Hierarchy:
    CloudProviderError (base)
    ├── ConfigurationError - Missing or invalid provider options
    ├── ValidationError - Malformed input (tags, URIs, credentials)
    │   └── InvalidUriError - URI is not a gs:// link to an object
    ├── RemoteServiceError - A remote call failed
    │   ├── MetadataError - Metadata server errors
    │   ├── StorageError - Cloud Storage errors
    │   │   └── ObjectNotFoundError - Requested object does not exist
    │   ├── MessagingError - Pub/Sub errors
    │   ├── ComputeError - Compute Engine API errors
    │   │   └── OperationError - Long-running operation finished with errors
    │   └── ApplianceError - BIG-IP iControl REST errors
    ├── RetryExhaustedError - Bounded retries used up
    └── FailoverError - Failover cannot proceed

Example:
    try:
        await provider.get_data_from_uri("gs://bucket/key")
    except ObjectNotFoundError:
        # Handle missing object
        pass
    except CloudProviderError:
        # Catch all provider errors
        pass
"""

from __future__ import annotations

from typing import Optional


class CloudProviderError(Exception):
    """Base exception for all provider errors."""

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        """Initialize the provider error.

        Args:
            message: Error message
            retry_after: Optional seconds to wait before retrying
        """
        super().__init__(message)
        self.message = message
        self.retry_after = retry_after


class ConfigurationError(CloudProviderError):
    """Raised when provider options are missing or inconsistent.

    Configuration errors are detected at initialization and are never
    retried.
    """
    pass


class ValidationError(CloudProviderError):
    """Raised when an input value is malformed."""
    pass


class InvalidUriError(ValidationError):
    """Raised when a storage URI cannot be parsed."""

    def __init__(self, uri: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"Invalid URI: {uri}")
        self.uri = uri


class RemoteServiceError(CloudProviderError):
    """Raised when a call to a remote service fails.

    Attributes:
        status: HTTP status code of the failed call, when known
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message, retry_after=retry_after)
        self.status = status


class MetadataError(RemoteServiceError):
    """Raised when the instance metadata server cannot be read."""
    pass


class StorageError(RemoteServiceError):
    """Raised for Cloud Storage failures."""
    pass


class ObjectNotFoundError(StorageError):
    """Raised when a stored object does not exist."""

    def __init__(self, key: str, bucket: Optional[str] = None) -> None:
        location = f"{bucket}/{key}" if bucket else key
        super().__init__(f"Object not found: {location}", status=404)
        self.key = key
        self.bucket = bucket


class MessagingError(RemoteServiceError):
    """Raised for Pub/Sub failures."""
    pass


class ComputeError(RemoteServiceError):
    """Raised for Compute Engine API failures."""
    pass


class OperationError(ComputeError):
    """Raised when a zone or region operation completes with errors."""

    def __init__(self, operation: str, errors: Optional[list] = None) -> None:
        super().__init__(f"Operation {operation} failed: {errors}")
        self.operation = operation
        self.errors = errors or []


class ApplianceError(RemoteServiceError):
    """Raised when the BIG-IP REST API returns an error."""
    pass


class RetryExhaustedError(CloudProviderError):
    """Raised when an operation still fails after all retries.

    Attributes:
        attempts: Number of attempts made
        last_error: The error raised by the final attempt
    """

    def __init__(
        self,
        message: str,
        attempts: int = 0,
        last_error: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class FailoverError(CloudProviderError):
    """Raised when failover cannot proceed."""
    pass
