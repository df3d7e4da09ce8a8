"""
Mapbox geocoding API wrapper implementing the Geocoder interface.

Forward-geocodes a canonical US address to a single coordinate pair,
optionally picking up the postal code from the response.

Reference: https://docs.mapbox.com/api/search/geocoding-v5/
"""

import asyncio
import threading
from functools import lru_cache
from typing import Optional, Any
from urllib.parse import quote
import logging

import httpx
import requests

from .base import Geocoder
from .models import GeocodeOutcome, GeocodeResult, GeocodeStatus, GeocodingConfig

logger = logging.getLogger(__name__)

RESULT_TYPES = "address,place,postcode"


class MapboxGeocoder(Geocoder):
    """
    Mapbox forward geocoding client.

    One request per call, constrained to address/place/postcode results and
    limited to the single top candidate. Both transports share request
    building and response parsing:

    - ``geocode_detailed`` / ``geocode_once``: async, via one httpx client per
      event loop, opened on first use and reused until ``aclose``
    - ``lookup_detailed`` / ``lookup``: sync, via a reused requests session

    No method raises. Configuration problems, HTTP errors, empty results and
    transport exceptions are logged and reported as the outcome's status.
    """

    def __init__(
        self,
        config: GeocodingConfig,
        session: Optional[requests.Session] = None,
        async_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the Mapbox client.

        Args:
            config: Geocoding configuration (token, endpoint, timeout)
            session: Optional requests session for the sync transport
            async_client: Optional httpx client for the async transport, owned
                by the caller. When omitted, the geocoder opens its own.
        """
        self.config = config
        self.session = session or requests.Session()
        self.async_client = async_client
        self._loop_clients: dict[asyncio.AbstractEventLoop, httpx.AsyncClient] = {}
        self._clients_lock = threading.Lock()

        logger.info(f"Initialized MapboxGeocoder: {config.base_url}, timeout={config.timeout}s")

    # ------------------------------------------------------------------
    # Request / response helpers
    # ------------------------------------------------------------------

    def _endpoint(self, address: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{quote(address, safe='')}.json"

    def _params(self) -> dict[str, Any]:
        return {
            "access_token": self.config.access_token.strip(),
            "limit": 1,
            "types": RESULT_TYPES,
        }

    def _precheck(self, address: str) -> Optional[GeocodeOutcome]:
        """Return a failed outcome when no request should be made."""
        if not address or not address.strip():
            return GeocodeOutcome(address=address, status=GeocodeStatus.INVALID_INPUT, message="Empty address")

        problem = self.config.token_problem()
        if problem:
            logger.error(f"[geocode] {problem}")
            return GeocodeOutcome(address=address, status=GeocodeStatus.CONFIG_ERROR, message=problem)
        return None

    @staticmethod
    def extract_postcode(feature: dict[str, Any]) -> Optional[str]:
        """
        Pull a postal code out of a feature.

        Structured context entries are preferred; the flat ``properties.postcode``
        field is the fallback.
        """
        for entry in feature.get("context") or []:
            if not isinstance(entry, dict):
                continue
            entry_id = entry.get("id")
            if isinstance(entry_id, str) and entry_id.startswith("postcode."):
                value = entry.get("text") or (entry.get("properties") or {}).get("short_code") or ""
                if value:
                    return str(value)
                break

        props = feature.get("properties") or {}
        if props.get("postcode"):
            return str(props["postcode"])
        return None

    def parse_response(self, address: str, payload: Any) -> GeocodeOutcome:
        """
        Turn a successful HTTP payload into an outcome.

        Coordinates come from the feature's ``center``, which is ordered
        longitude first.
        """
        features = payload.get("features") if isinstance(payload, dict) else None
        feature = features[0] if features else None
        center = feature.get("center") if isinstance(feature, dict) else None

        if not isinstance(center, (list, tuple)) or len(center) < 2:
            logger.warning(f"[geocode] No features for address: {address}")
            return GeocodeOutcome(address=address, status=GeocodeStatus.NOT_FOUND, message="No features", http_status=200)

        try:
            lng, lat = float(center[0]), float(center[1])
        except (TypeError, ValueError):
            logger.warning(f"[geocode] Unreadable center {center!r} for address: {address}")
            return GeocodeOutcome(address=address, status=GeocodeStatus.NOT_FOUND, message="Bad center", http_status=200)

        result = GeocodeResult(lat=lat, lng=lng, zip=self.extract_postcode(feature))
        if not result.is_valid():
            return GeocodeOutcome(address=address, status=GeocodeStatus.NOT_FOUND, message="Out of range", http_status=200)
        return GeocodeOutcome(address=address, status=GeocodeStatus.OK, result=result, http_status=200)

    def _http_error(self, address: str, status_code: int, body: str) -> GeocodeOutcome:
        logger.error(f"[geocode] Mapbox HTTP error: {status_code} {body[:200]}")
        return GeocodeOutcome(
            address=address,
            status=GeocodeStatus.API_ERROR,
            message=body[:500],
            http_status=status_code,
        )

    def _exception(self, address: str, error: Exception) -> GeocodeOutcome:
        logger.error(f"[geocode] exception for {address!r}: {error}")
        return GeocodeOutcome(address=address, status=GeocodeStatus.EXCEPTION, message=str(error)[:500])

    # ------------------------------------------------------------------
    # Async transport
    # ------------------------------------------------------------------

    def _new_async_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.config.timeout)

    def _client(self) -> httpx.AsyncClient:
        """
        Client for the running event loop.

        httpx connections are bound to the loop that opened them, so each loop
        (the API server's, or one per ``asyncio.run`` upload) gets its own
        client, shared by every lookup made on it.
        """
        if self.async_client is not None:
            return self.async_client

        loop = asyncio.get_running_loop()
        with self._clients_lock:
            client = self._loop_clients.get(loop)
            if client is None or client.is_closed:
                for stale in [other for other in self._loop_clients if other.is_closed()]:
                    del self._loop_clients[stale]
                client = self._new_async_client()
                self._loop_clients[loop] = client
        return client

    async def aclose(self) -> None:
        """Close the client this geocoder opened for the running loop."""
        with self._clients_lock:
            client = self._loop_clients.pop(asyncio.get_running_loop(), None)
        if client is not None:
            await client.aclose()

    def close(self) -> None:
        """Close the sync session."""
        self.session.close()

    async def geocode_detailed(self, address: str) -> GeocodeOutcome:
        """
        Geocode one address asynchronously.

        Args:
            address: Canonical address string

        Returns:
            GeocodeOutcome; never raises
        """
        failed = self._precheck(address)
        if failed:
            return failed

        try:
            response = await self._client().get(self._endpoint(address), params=self._params())
            if not response.is_success:
                return self._http_error(address, response.status_code, response.text)
            return self.parse_response(address, response.json())
        except Exception as e:
            return self._exception(address, e)

    # ------------------------------------------------------------------
    # Sync transport
    # ------------------------------------------------------------------

    def lookup_detailed(self, address: str) -> GeocodeOutcome:
        """
        Geocode one address synchronously.

        Args:
            address: Canonical address string

        Returns:
            GeocodeOutcome; never raises
        """
        failed = self._precheck(address)
        if failed:
            return failed

        try:
            response = self.session.get(
                self._endpoint(address),
                params=self._params(),
                timeout=self.config.timeout,
                headers={"Accept": "application/json"},
            )
            if not response.ok:
                return self._http_error(address, response.status_code, response.text or "")
            return self.parse_response(address, response.json())
        except Exception as e:
            return self._exception(address, e)


@lru_cache(maxsize=1)
def get_geocoder() -> MapboxGeocoder:
    """
    Process-wide geocoder.

    Constructed once from settings on first use and reused thereafter, so the
    requests session and the per-loop httpx clients survive across requests.
    """
    return MapboxGeocoder(GeocodingConfig.from_settings())
