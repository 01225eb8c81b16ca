"""
Diasend API client: the device-data source.

Authenticates with the OAuth2 password grant (client id and secret sent as
HTTP basic auth) and reads the patient's combined device data for a time
window. The access token is cached until shortly before it expires and is
discarded whenever the API rejects it, so the next cycle authenticates
again.

The ``combined`` payload is a list of device blocks::

    [{"device": {"serial": ..., "manufacturer": ..., "model": ...},
      "data": [{"type": "glucose", "created_at": ..., "value": ...}, ...]}]

Each element of ``data`` is parsed with
[parse_patient_record][nightbridge.models.records.parse_patient_record].
A record that cannot be parsed is logged and skipped; it never fails the
whole fetch.

See Also:
    [RecordSource][nightbridge.services.common.types.RecordSource]: The
        protocol this client satisfies.
    [DiasendConfig][nightbridge.clients.configs.DiasendConfig]: Endpoints,
        limits and credentials.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Self

import aiohttp

from nightbridge.core.exceptions import AuthenticationError, TransportError
from nightbridge.core.logger import Logger
from nightbridge.models import DeviceInfo, PatientRecordWithDeviceData, parse_patient_record
from nightbridge.utils.http import read_bounded_json


if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime, tzinfo
    from types import TracebackType

    from .configs import DiasendConfig


_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
_AUTH_STATUSES = frozenset({401, 403})


class DiasendClient:
    """Async client for the Diasend patient-data API.

    Examples:
        ```python
        async with DiasendClient(config, timezone=ZoneInfo("Europe/Berlin")) as client:
            records = await client.fetch_records(date_from, date_to)
        ```
    """

    def __init__(
        self,
        config: DiasendConfig,
        *,
        timezone: tzinfo,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._timezone = timezone
        self._session = session
        self._owns_session = session is None
        self._clock = clock
        self._logger = Logger("diasend")
        self._token: str | None = None
        self._token_expires_at = 0.0

    @property
    def config(self) -> DiasendConfig:
        return self._config

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

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

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    def invalidate_token(self) -> None:
        self._token = None
        self._token_expires_at = 0.0

    async def obtain_access_token(self) -> str:
        """Return a valid access token, requesting a new one when needed.

        Raises:
            AuthenticationError: If the credentials are rejected.
            TransportError: On network failure or an unreadable response.
        """
        if self._token is not None and self._clock() < self._token_expires_at:
            return self._token

        cfg = self._config
        form = {
            "grant_type": "password",
            "username": cfg.username.get_secret_value(),
            "password": cfg.password.get_secret_value(),
            "scope": cfg.scope,
        }
        auth = aiohttp.BasicAuth(cfg.client_id.get_secret_value(), cfg.client_secret.get_secret_value())
        try:
            async with self._get_session().post(cfg.token_url, data=form, auth=auth) as response:
                if response.status in _AUTH_STATUSES or response.status == 400:
                    raise AuthenticationError(f"Token request rejected: HTTP {response.status}")
                if response.status >= 300:
                    raise TransportError(f"Token request failed: HTTP {response.status}")
                body = await read_bounded_json(response, cfg.max_response_size)
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            raise TransportError(f"Token request failed: {e}") from e

        if not isinstance(body, dict) or not body.get("access_token"):
            raise TransportError("Token response has no access_token")

        expires_in = float(body.get("expires_in", 0) or 0)
        self._token = str(body["access_token"])
        self._token_expires_at = self._clock() + max(0.0, expires_in - cfg.token_refresh_margin)
        self._logger.debug("token_obtained", expires_in=expires_in)
        return self._token

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    async def fetch_patient_data(self, date_from: datetime, date_to: datetime) -> list[Any]:
        """Fetch the raw ``combined`` payload for a window.

        Raises:
            AuthenticationError: If the token is rejected.
            TransportError: On network failure, bad status, or bad payload.
        """
        token = await self.obtain_access_token()
        params = {
            "type": "combined",
            "date_from": date_from.astimezone(self._timezone).strftime(_DATE_FORMAT),
            "date_to": date_to.astimezone(self._timezone).strftime(_DATE_FORMAT),
        }
        url = f"{self._config.base_url.rstrip('/')}/1/patient/data"
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}
        try:
            async with self._get_session().get(url, params=params, headers=headers) as response:
                if response.status in _AUTH_STATUSES:
                    self.invalidate_token()
                    raise AuthenticationError(f"Patient data rejected: HTTP {response.status}")
                if response.status >= 300:
                    raise TransportError(f"Patient data request failed: HTTP {response.status}")
                body = await read_bounded_json(response, self._config.max_response_size)
        except (aiohttp.ClientError, TimeoutError, ValueError) as e:
            raise TransportError(f"Patient data request failed: {e}") from e

        if body is None:
            return []
        if not isinstance(body, list):
            raise TransportError(f"Patient data must be a list, got {type(body).__name__}")
        return body

    async def fetch_records(
        self, date_from: datetime, date_to: datetime
    ) -> list[PatientRecordWithDeviceData]:
        """Fetch and parse every record created in ``[date_from, date_to)``.

        Records are returned in payload order. Malformed device blocks and
        records are skipped with a warning.
        """
        payload = await self.fetch_patient_data(date_from, date_to)

        records: list[PatientRecordWithDeviceData] = []
        skipped = 0
        for block in payload:
            try:
                device = DeviceInfo.from_dict(block.get("device") or {})
            except (AttributeError, TypeError, ValueError) as e:
                self._logger.warning("device_parse_failed", error=str(e))
                continue
            for raw in block.get("data") or []:
                try:
                    record = parse_patient_record(raw, self._timezone)
                except (KeyError, TypeError, ValueError) as e:
                    skipped += 1
                    self._logger.warning(
                        "record_parse_failed", device=device.serial, error=str(e)
                    )
                    continue
                if date_from <= record.created_at < date_to:
                    records.append(PatientRecordWithDeviceData(record=record, device=device))

        self._logger.debug("records_fetched", count=len(records), skipped=skipped)
        return records
