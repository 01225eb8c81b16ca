"""
Nightscout REST client: the monitoring-log sink and profile store.

Every request carries the ``api-secret`` header holding the SHA-1 hex
digest of the configured secret. Response bodies are read with a size
bound; any failure, including a response the models cannot parse, is
raised as [SinkError][nightbridge.core.exceptions.SinkError].

See Also:
    [EntrySink][nightbridge.services.common.types.EntrySink],
    [TreatmentSink][nightbridge.services.common.types.TreatmentSink],
    [ProfileStore][nightbridge.services.common.types.ProfileStore]: The
        protocols this client satisfies.
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING, Any, Self

import aiohttp

from nightbridge.core.exceptions import SinkError
from nightbridge.core.logger import Logger
from nightbridge.models import Entry, Profile, treatment_from_dict
from nightbridge.utils.http import read_bounded_json


if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import TracebackType

    from nightbridge.models import Treatment

    from .configs import NightscoutConfig


ENTRIES_PATH = "/api/v1/entries"
TREATMENTS_PATH = "/api/v1/treatments"
PROFILE_PATH = "/api/v1/profile"


def hash_api_secret(secret: str) -> str:
    """Return the SHA-1 hex digest Nightscout expects in ``api-secret``."""
    return hashlib.sha1(secret.encode("utf-8")).hexdigest()  # noqa: S324


class NightscoutClient:
    """Async client for the Nightscout v1 API."""

    def __init__(
        self,
        config: NightscoutConfig,
        *,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._session = session
        self._owns_session = session is None
        self._logger = Logger("nightscout")
        self._headers = {
            "api-secret": hash_api_secret(config.api_secret.get_secret_value()),
            "Accept": "application/json",
        }

    @property
    def config(self) -> NightscoutConfig:
        return self._config

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.timeout)
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _request(self, method: str, path: str, payload: Any = None) -> Any:
        url = f"{self._config.url.rstrip('/')}{path}"
        try:
            async with self._get_session().request(
                method, url, json=payload, headers=self._headers
            ) as response:
                if response.status >= 300:
                    raise SinkError(f"{method} {path} failed: HTTP {response.status}")
                return await read_bounded_json(response, self._config.max_response_size)
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            raise SinkError(f"{method} {path} failed: {e}") from e

    # -------------------------------------------------------------------------
    # Sinks
    # -------------------------------------------------------------------------

    async def report_entries(self, entries: Sequence[Entry]) -> list[Entry]:
        """Store glucose entries and return the stored ones."""
        if not entries:
            return []
        body = await self._request("POST", ENTRIES_PATH, [e.to_dict() for e in entries])
        try:
            stored = [Entry.from_dict(doc) for doc in body or []]
        except (KeyError, TypeError, ValueError) as e:
            raise SinkError(f"Unreadable entries response: {e}") from e
        self._logger.debug("entries_stored", sent=len(entries), stored=len(stored))
        return stored

    async def report_treatments(self, treatments: Sequence[Treatment]) -> list[Treatment]:
        """Store treatments and return the stored ones."""
        if not treatments:
            return []
        body = await self._request("POST", TREATMENTS_PATH, [t.to_dict() for t in treatments])
        try:
            stored = [treatment_from_dict(doc) for doc in body or []]
        except (KeyError, TypeError, ValueError) as e:
            raise SinkError(f"Unreadable treatments response: {e}") from e
        self._logger.debug("treatments_stored", sent=len(treatments), stored=len(stored))
        return stored

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    async def fetch_profile(self) -> Profile:
        """Return the most recent profile document.

        Raises:
            SinkError: If the site has no profile or the document is unreadable.
        """
        body = await self._request("GET", PROFILE_PATH)
        docs = body if isinstance(body, list) else [body]
        if not docs or docs[0] is None:
            raise SinkError("Nightscout has no profile document")
        try:
            return Profile.from_dict(docs[0])
        except (KeyError, TypeError, ValueError) as e:
            raise SinkError(f"Unreadable profile: {e}") from e

    async def update_profile(self, profile: Profile) -> Profile:
        """Replace the profile document and return the stored version."""
        body = await self._request("PUT", PROFILE_PATH, profile.to_dict())
        if not isinstance(body, dict):
            return profile
        try:
            return Profile.from_dict(body)
        except (KeyError, TypeError, ValueError) as e:
            raise SinkError(f"Unreadable profile: {e}") from e
