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

"""
Authenticated HTTP session for Google Cloud REST APIs.

GcpSession owns everything that used to be process-wide state: the aiohttp
client session, the project id and the bearer token. Clients receive a
session explicitly, so several providers (or tests) can coexist in one
process.

Token sources:
- MetadataTokenSource: service-account token from the instance metadata
  server, for code running on a Compute Engine VM
- ServiceAccountTokenSource: token minted from explicit service account
  credentials through google-auth
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type

import aiohttp

from cloudlibs_gce.exceptions import MetadataError, RemoteServiceError
from cloudlibs_gce.utils.logger import logger as default_logger

METADATA_URL = "http://metadata.google.internal/computeMetadata/v1"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"

# Refresh tokens this many seconds before they expire
TOKEN_EXPIRY_MARGIN = 60.0


class MetadataClient:
    """Reads entries from the instance metadata server.

    Example:
        >>> metadata = MetadataClient(http)
        >>> zone = await metadata.get("instance/zone")
    """

    def __init__(
        self,
        http: aiohttp.ClientSession,
        base_url: str = METADATA_URL,
        timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._http = http
        self.base_url = base_url
        self.timeout = timeout
        self.logger = logger or default_logger

    async def get(self, entry: str) -> str:
        """Get a metadata entry as text.

        Args:
            entry: Entry path, for example ``instance/zone``

        Raises:
            MetadataError: If the entry cannot be read
        """
        url = f"{self.base_url}/{entry}"
        try:
            async with self._http.get(
                url,
                headers={"Metadata-Flavor": "Google"},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise MetadataError(
                        f"Error getting metadata {entry}: {resp.status} {text}",
                        status=resp.status,
                    )
                return text
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.info(f"Error getting metadata {entry}: {e}")
            raise MetadataError(f"Error getting metadata {entry}: {e}") from e

    async def get_json(self, entry: str) -> Dict[str, Any]:
        text = await self.get(entry)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise MetadataError(f"Metadata entry {entry} is not JSON") from e


class TokenSource(ABC):
    """Supplies bearer tokens and the project they belong to."""

    @abstractmethod
    async def get_token(self) -> str:
        """Get a bearer token that is valid for at least a short while."""

    @abstractmethod
    async def get_project_id(self) -> str:
        """Get the project the token belongs to."""


class MetadataTokenSource(TokenSource):
    """Tokens for a VM's service account, from the metadata server."""

    def __init__(self, metadata: MetadataClient, service_account: str = "default") -> None:
        self.metadata = metadata
        self.service_account = service_account
        self._token: Optional[str] = None
        self._expires_at = 0.0

    async def get_token(self) -> str:
        if self._token and time.time() < self._expires_at:
            return self._token
        data = await self.metadata.get_json(
            f"instance/service-accounts/{self.service_account}/token"
        )
        self._token = data["access_token"]
        self._expires_at = time.time() + float(data.get("expires_in", 0)) - TOKEN_EXPIRY_MARGIN
        return self._token

    async def get_project_id(self) -> str:
        return await self.metadata.get("project/project-id")


class ServiceAccountTokenSource(TokenSource):
    """Tokens minted from service account credentials with google-auth."""

    def __init__(self, credentials_info: Dict[str, Any]) -> None:
        from google.oauth2 import service_account

        self.project_id = credentials_info.get("project_id", "")
        self.credentials = service_account.Credentials.from_service_account_info(
            credentials_info, scopes=[CLOUD_PLATFORM_SCOPE]
        )

    async def get_token(self) -> str:
        if not self.credentials.valid:
            from google.auth.transport.requests import Request

            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.credentials.refresh, Request())
        return self.credentials.token

    async def get_project_id(self) -> str:
        return self.project_id


class GcpSession:
    """Shared state for talking to Google Cloud REST APIs.

    Initialization is lazy: the first request looks up the project id and
    a bearer token. Use as an async context manager, or call ``close()``.

    Example:
        >>> async with GcpSession() as session:
        ...     data = await session.request("GET", COMPUTE_URL, "zones")
    """

    def __init__(
        self,
        token_source: Optional[TokenSource] = None,
        http: Optional[aiohttp.ClientSession] = None,
        project_id: Optional[str] = None,
        service_account: str = "default",
        request_timeout: float = 60.0,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or default_logger
        self.request_timeout = request_timeout
        self.project_id = project_id
        self.service_account = service_account

        self._http = http
        self._owns_http = http is None
        self._token_source = token_source
        self._metadata: Optional[MetadataClient] = None
        self._init_lock: Optional[asyncio.Lock] = None
        self.initialized = False

    @property
    def http(self) -> aiohttp.ClientSession:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self._http

    @property
    def metadata(self) -> MetadataClient:
        if self._metadata is None:
            self._metadata = MetadataClient(self.http, logger=self.logger)
        return self._metadata

    @property
    def token_source(self) -> TokenSource:
        if self._token_source is None:
            self._token_source = MetadataTokenSource(self.metadata, self.service_account)
        return self._token_source

    async def initialize(self) -> None:
        """Look up the project id. Safe to call more than once."""
        if self.initialized:
            return
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        async with self._init_lock:
            if self.initialized:
                return
            if not self.project_id:
                self.project_id = await self.token_source.get_project_id()
            await self.token_source.get_token()
            self.initialized = True
            self.logger.debug(f"GCP session initialized for project {self.project_id}")

    async def request(
        self,
        method: str,
        base_url: str,
        path: str,
        body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
        error_cls: Type[RemoteServiceError] = RemoteServiceError,
    ) -> Dict[str, Any]:
        """Send an authenticated JSON request scoped to the project.

        Args:
            method: HTTP method
            base_url: API base, e.g. ``https://compute.googleapis.com/compute/v1``
            path: Path below ``projects/<project>/``, or an absolute URL
            body: Optional JSON body
            params: Optional query parameters
            error_cls: Exception type raised on failure

        Returns:
            Decoded JSON response, ``{}`` for an empty body
        """
        await self.initialize()
        token = await self.token_source.get_token()

        if path.startswith("https://"):
            url = path
        else:
            url = f"{base_url}/projects/{self.project_id}/{path}"

        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            async with self.http.request(
                method,
                url,
                headers=headers,
                json=body,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            ) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    raise error_cls(
                        f"{method} {url} failed: {resp.status} {text}",
                        status=resp.status,
                    )
                return json.loads(text) if text else {}
        except json.JSONDecodeError as e:
            raise error_cls(f"{method} {url} returned invalid JSON") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise error_cls(f"{method} {url} failed: {e}") from e

    async def close(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.close()
        self._http = None
        self._metadata = None

    async def __aenter__(self) -> "GcpSession":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
