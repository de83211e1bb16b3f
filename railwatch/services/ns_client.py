"""Client for the NS (Dutch Railways) public API."""

from typing import Any

import httpx
import structlog
from aiocache import Cache
from aiocache.base import BaseCache
from aiocache.serializers import PickleSerializer
from opentelemetry.trace import SpanKind
from pydantic import ValidationError

from railwatch.core.config import require_config, settings
from railwatch.core.telemetry import service_span
from railwatch.core.utils import parse_redis_endpoint
from railwatch.schemas.ns import NsDisruption, NsStation, NsStationsResponse, NsTrip, NsTripsResponse

logger = structlog.get_logger(__name__)

STATIONS_PATH = "/nsapp-stations/v2"
DISRUPTIONS_PATH = "/disruptions/v3"
TRIPS_PATH = "/reisinformatie-api/api/v3/trips"
ACTIVE_DISRUPTIONS_CACHE_KEY = "disruptions:active"


class TransitApiError(Exception):
    """The NS API could not be reached or returned an unusable response."""


def create_disruptions_cache() -> BaseCache:
    """Redis-backed cache for the shared active-disruption list."""
    host, port, db = parse_redis_endpoint(settings.REDIS_URL)
    return Cache(
        Cache.REDIS,
        endpoint=host,
        port=port,
        db=db,
        serializer=PickleSerializer(),
        namespace="ns",
    )


class NsApiClient:
    """
    Thin async wrapper around the three NS endpoints the application uses.

    Every transport problem, non-2xx status or malformed envelope is raised as
    TransitApiError so callers only ever handle one failure type.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient | None = None,
        cache: BaseCache | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            http_client: Pre-configured client (tests inject a MockTransport); one is
                created per request otherwise
            cache: Cache for the active disruption list; None disables caching
        """
        self._http_client = http_client
        self.cache = cache

    def _headers(self) -> dict[str, str]:
        require_config("NS_API_KEY")
        return {
            "Ocp-Apim-Subscription-Key": settings.NS_API_KEY or "",
            "Cache-Control": "no-cache",
        }

    async def _get_json(self, path: str, params: dict[str, str]) -> Any:  # noqa: ANN401
        url = f"{settings.NS_API_BASE_URL}{path}"
        headers = self._headers()
        with service_span("ns_api_get", "ns-api", kind=SpanKind.CLIENT, **{"http.route": path}) as span:
            try:
                if self._http_client is not None:
                    response = await self._http_client.get(
                        url, params=params, headers=headers, timeout=settings.NS_API_TIMEOUT
                    )
                else:
                    async with httpx.AsyncClient(timeout=settings.NS_API_TIMEOUT) as client:
                        response = await client.get(url, params=params, headers=headers)
                span.set_attribute("http.status_code", response.status_code)
                response.raise_for_status()
                return response.json()
            except httpx.TimeoutException as e:
                logger.error("ns_api_timeout", path=path, timeout=settings.NS_API_TIMEOUT)
                msg = f"NS API timed out after {settings.NS_API_TIMEOUT}s"
                raise TransitApiError(msg) from e
            except httpx.HTTPStatusError as e:
                logger.error("ns_api_error_status", path=path, status=e.response.status_code)
                msg = f"NS API returned {e.response.status_code}"
                raise TransitApiError(msg) from e
            except httpx.HTTPError as e:
                logger.error("ns_api_request_failed", path=path, error=str(e))
                msg = f"NS API request failed: {e!s}"
                raise TransitApiError(msg) from e
            except ValueError as e:
                logger.error("ns_api_invalid_json", path=path, error=str(e))
                msg = "NS API returned invalid JSON"
                raise TransitApiError(msg) from e

    async def fetch_active_disruptions(self, use_cache: bool = True) -> list[NsDisruption]:
        """
        Fetch every currently active disruption in the network.

        Records that fail validation are skipped individually.

        Args:
            use_cache: Reuse a recently fetched list (shared by all routes)

        Returns:
            Parsed disruptions, possibly empty ("all clear")

        Raises:
            TransitApiError: If the API fails or the body is not a list
        """
        if use_cache and self.cache is not None:
            cached: list[NsDisruption] | None = await self.cache.get(ACTIVE_DISRUPTIONS_CACHE_KEY)
            if cached is not None:
                logger.debug("disruptions_cache_hit", count=len(cached))
                return cached

        data = await self._get_json(DISRUPTIONS_PATH, {"isActive": "true"})
        if not isinstance(data, list):
            logger.error("ns_disruptions_unexpected_body", body_type=type(data).__name__)
            msg = "NS disruptions response is not a list"
            raise TransitApiError(msg)

        disruptions: list[NsDisruption] = []
        for index, raw in enumerate(data):
            try:
                disruptions.append(NsDisruption.model_validate(raw))
            except ValidationError as e:
                logger.warning("ns_disruption_record_skipped", index=index, errors=e.error_count())

        if self.cache is not None:
            await self.cache.set(ACTIVE_DISRUPTIONS_CACHE_KEY, disruptions, ttl=settings.DISRUPTIONS_CACHE_TTL)
        logger.info("ns_disruptions_fetched", count=len(disruptions), skipped=len(data) - len(disruptions))
        return disruptions

    async def fetch_stations(self) -> list[NsStation]:
        """
        Fetch the station directory for the configured countries.

        Raises:
            TransitApiError: If the API fails or the body cannot be parsed
        """
        data = await self._get_json(STATIONS_PATH, {"countryCodes": settings.STATION_SYNC_COUNTRIES})
        try:
            return NsStationsResponse.model_validate(data).payload
        except ValidationError as e:
            msg = "NS stations response could not be parsed"
            raise TransitApiError(msg) from e

    async def fetch_trips(self, origin_code: str, destination_code: str) -> list[NsTrip]:
        """
        Plan trips between two stations.

        Raises:
            TransitApiError: If the API fails or the body cannot be parsed
        """
        data = await self._get_json(TRIPS_PATH, {"fromStation": origin_code, "toStation": destination_code})
        try:
            return NsTripsResponse.model_validate(data).trips
        except ValidationError as e:
            msg = "NS trips response could not be parsed"
            raise TransitApiError(msg) from e


def get_ns_client() -> NsApiClient:
    """FastAPI dependency providing an uncached NS API client."""
    return NsApiClient()
