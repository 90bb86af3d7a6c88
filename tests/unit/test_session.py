# Copyright 2026 Firefly Software Solutions Inc
# SPDX-License-Identifier: Apache-2.0

"""Unit tests for session token sources."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from cloudlibs_gce.gcp.session import MetadataTokenSource, TokenSource


class TestTokenSource:
    """Tests for the token source contract."""

    def test_cannot_instantiate_base(self):
        with pytest.raises(TypeError):
            TokenSource()

    def test_partial_subclass_rejected(self):
        """A source must supply both a token and a project."""

        class TokenOnly(TokenSource):
            async def get_token(self) -> str:
                return "token"

        with pytest.raises(TypeError):
            TokenOnly()


class TestMetadataTokenSource:
    """Tests for tokens from the metadata server."""

    @pytest.mark.asyncio
    async def test_token_cached_until_expiry(self):
        metadata = MagicMock()
        metadata.get_json = AsyncMock(return_value={"access_token": "abc", "expires_in": 3600})
        source = MetadataTokenSource(metadata)

        assert await source.get_token() == "abc"
        assert await source.get_token() == "abc"

        metadata.get_json.assert_awaited_once_with("instance/service-accounts/default/token")

    @pytest.mark.asyncio
    async def test_project_id(self):
        metadata = MagicMock()
        metadata.get = AsyncMock(return_value="my-project")

        assert await MetadataTokenSource(metadata).get_project_id() == "my-project"
        metadata.get.assert_awaited_once_with("project/project-id")
