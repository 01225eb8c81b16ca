"""
Unit tests for clients.nightscout module.

Tests:
- API secret hashing and request headers
- Entry and treatment reporting
- Profile fetch and update
- Error mapping to SinkError
"""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from nightbridge.clients import NightscoutClient, NightscoutConfig, hash_api_secret
from nightbridge.core.exceptions import SinkError
from nightbridge.models import CorrectionBolusTreatment, Entry, MealBolusTreatment


NOON = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


def _response(status=200, body=None):
    raw = b"" if body is None else json.dumps(body).encode()
    response = MagicMock()
    response.status = status
    response.content.read = AsyncMock(side_effect=[raw, b""])
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=response)
    cm.__aexit__ = AsyncMock(return_value=False)
    return cm


def _echo(method, url, json=None, headers=None):
    return _response(body=json)


@pytest.fixture
def session():
    session = MagicMock()
    session.request = MagicMock(side_effect=_echo)
    return session


@pytest.fixture
def client(credentials_env, session):
    return NightscoutClient(NightscoutConfig(url="https://ns.example.org/"), session=session)


class TestHashApiSecret:
    """SHA-1 digest of the API secret."""

    def test_known_digest(self):
        assert hash_api_secret("test") == "a94a8fe5ccb19ba61c4c0873d391e987982fbbd3"

    @pytest.mark.asyncio
    async def test_header_sent(self, client, session):
        await client.report_entries([Entry(date=NOON, sgv=100, device="cgm")])

        headers = session.request.call_args.kwargs["headers"]
        assert headers["api-secret"] == "8d4c7b30555edd74296b38081bf814ddf3f32d8c"


# ============================================================================
# Entries and Treatments
# ============================================================================


class TestReport:
    """POST of entries and treatments."""

    @pytest.mark.asyncio
    async def test_entries(self, client, session):
        entries = [Entry(date=NOON, sgv=100, device="cgm")]

        stored = await client.report_entries(entries)

        method, url = session.request.call_args.args
        assert (method, url) == ("POST", "https://ns.example.org/api/v1/entries")
        assert session.request.call_args.kwargs["json"] == [entries[0].to_dict()]
        assert stored == entries

    @pytest.mark.asyncio
    async def test_treatments(self, client, session):
        treatments = [
            MealBolusTreatment(created_at=NOON, insulin=3.0, carbs=30.0, device="pump"),
            CorrectionBolusTreatment(created_at=NOON, insulin=1.0, device="pump"),
        ]

        stored = await client.report_treatments(treatments)

        assert session.request.call_args.args[1] == "https://ns.example.org/api/v1/treatments"
        assert stored == treatments

    @pytest.mark.asyncio
    async def test_empty_sends_nothing(self, client, session):
        assert await client.report_entries([]) == []
        assert await client.report_treatments([]) == []
        session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_http_error(self, client, session):
        session.request.side_effect = lambda *a, **kw: _response(status=401)
        with pytest.raises(SinkError, match="401"):
            await client.report_entries([Entry(date=NOON, sgv=100, device="cgm")])

    @pytest.mark.asyncio
    async def test_connection_error(self, client, session):
        session.request.side_effect = aiohttp.ClientConnectionError("reset")
        with pytest.raises(SinkError, match="reset"):
            await client.report_entries([Entry(date=NOON, sgv=100, device="cgm")])

    @pytest.mark.asyncio
    async def test_unreadable_echo(self, client, session):
        session.request.side_effect = lambda *a, **kw: _response(body=[{"eventType": "Note"}])
        with pytest.raises(SinkError, match="Unreadable"):
            await client.report_treatments(
                [CorrectionBolusTreatment(created_at=NOON, insulin=1.0, device="pump")]
            )


# ============================================================================
# Profile
# ============================================================================


class TestProfile:
    """Profile store operations."""

    @pytest.mark.asyncio
    async def test_fetch_latest(self, client, session, profile):
        session.request.side_effect = lambda *a, **kw: _response(
            body=[profile.to_dict(), {"defaultProfile": "Old", "store": {}}]
        )

        assert await client.fetch_profile() == profile
        assert session.request.call_args.args == ("GET", "https://ns.example.org/api/v1/profile")

    @pytest.mark.asyncio
    async def test_fetch_none(self, client, session):
        session.request.side_effect = lambda *a, **kw: _response(body=[])
        with pytest.raises(SinkError, match="no profile"):
            await client.fetch_profile()

    @pytest.mark.asyncio
    async def test_fetch_unreadable(self, client, session):
        session.request.side_effect = lambda *a, **kw: _response(body=[{"store": {}}])
        with pytest.raises(SinkError, match="Unreadable"):
            await client.fetch_profile()

    @pytest.mark.asyncio
    async def test_update(self, client, session, profile):
        stored = await client.update_profile(profile)

        method, url = session.request.call_args.args
        assert method == "PUT"
        assert url == "https://ns.example.org/api/v1/profile"
        assert session.request.call_args.kwargs["json"]["_id"] == "abc123"
        assert stored == profile

    @pytest.mark.asyncio
    async def test_update_without_echo(self, client, session, profile):
        session.request.side_effect = lambda *a, **kw: _response(body=None)
        assert await client.update_profile(profile) is profile
