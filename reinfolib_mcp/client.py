import os
import aiohttp
import asyncio
import base64
import json
import time
from typing import Any, Dict, Optional
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from .config import Settings, load_settings
from .utils import logger, new_request_id, preview
from .schemas import (
    RealEstatePriceParams,
    AppraisalParams,
    TileParams,
    YearTileParams,
    LandPriceParams,
    PopulationMeshParams,
    StationPassengersParams,
)

TRANSIENT_STATUSES = (429, 500, 502, 503, 504)
UNKNOWN_ERROR_MESSAGE = "不明なエラー"
NETWORK_ERROR_MESSAGE = "APIとの通信中にエラーが発生しました"


class RateLimiter:
    """
    Token bucket shared by every request of one ReinfolibClient.
    Bursts up to max(1, rps) requests; rps <= 0 disables limiting.
    """

    def __init__(self, rps: float):
        self.rate = float(rps)
        self.capacity = max(1.0, self.rate)
        self.tokens = self.capacity
        self._stamp = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self._stamp) * self.rate)
        self._stamp = now

    async def acquire(self) -> None:
        if self.rate <= 0:
            return
        async with self._lock:
            self._refill()
            while self.tokens < 1.0:
                await asyncio.sleep(min((1.0 - self.tokens) / self.rate, 1.0))
                self._refill()
            self.tokens -= 1.0


class TransientHttpError(RuntimeError):
    """Error (429/5xx/network/timeout) -> eligible for retry."""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class ReinfolibApiError(RuntimeError):
    """Request to reinfolib failed for good (non-retryable status or retries exhausted)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status

    @classmethod
    def from_response(cls, status: int, body: str) -> "ReinfolibApiError":
        detail = None
        try:
            parsed = json.loads(body) if body else None
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            detail = parsed.get("message")
        return cls(f"API Error: {status} - {detail or UNKNOWN_ERROR_MESSAGE}", status=status)


def _clean_params(params: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Drop None values and stringify the rest (aiohttp only accepts str/int/float)."""
    out: Dict[str, str] = {}
    for k, v in (params or {}).items():
        if v is None:
            continue
        if isinstance(v, bool):
            out[k] = "true" if v else "false"
        else:
            out[k] = str(v)
    return out


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


class ReinfolibClient:
    """
    REST client for the MLIT Real Estate Information Library.
    - Endpoint: GET https://www.reinfolib.mlit.go.jp/ex-api/external/<API>
    - Header:  Ocp-Apim-Subscription-Key: <REINFOLIB_API_KEY>
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.s = settings or load_settings()
        self._session: Optional[aiohttp.ClientSession] = None
        self._limiter = RateLimiter(self.s.rps)

    async def _ensure(self):
        if self._session is None or self._session.closed:
            try:
                total_timeout = float(os.getenv("REINFOLIB_TIMEOUT_S", str(self.s.timeout_s)))
            except ValueError:
                total_timeout = self.s.timeout_s
            timeout = aiohttp.ClientTimeout(total=total_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    def url_for(self, endpoint: str) -> str:
        return f"{str(self.s.base_url).rstrip('/')}/{endpoint.lstrip('/')}"

    # ---------- HTTP helper ----------
    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET one reinfolib endpoint and return the decoded body.
        - JSON/GeoJSON bodies are parsed
        - pbf (vector tile) bodies come back base64-encoded
        - Retry on 429/5xx + timeout/network errors
        - Log response details if REINFOLIB_DEBUG_RESP=1
        """
        await self._ensure()
        assert self._session is not None

        query = _clean_params(params)
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Ocp-Apim-Subscription-Key": self.s.api_key,
        }
        url = self.url_for(endpoint)

        debug_resp = os.getenv("REINFOLIB_DEBUG_RESP") == "1"
        body_limit = _env_int("REINFOLIB_LOG_BODY_LIMIT", 4000)

        rid = new_request_id()

        retryer = AsyncRetrying(
            retry=retry_if_exception_type(TransientHttpError),
            wait=wait_exponential(multiplier=self.s.backoff_base_s, min=self.s.backoff_base_s, max=8),
            stop=stop_after_attempt(1 + self.s.max_retries),
            reraise=True,
        )

        try:
            async for attempt in retryer:
                with attempt:
                    await self._limiter.acquire()
                    return await self._get_once(
                        rid, url, endpoint, query, headers,
                        debug_resp=debug_resp, body_limit=body_limit,
                    )
        except TransientHttpError as e:
            if e.status is not None:
                raise ReinfolibApiError.from_response(e.status, e.body) from e
            raise ReinfolibApiError(NETWORK_ERROR_MESSAGE) from e

    async def _get_once(
        self,
        rid: str,
        url: str,
        endpoint: str,
        query: Dict[str, str],
        headers: Dict[str, str],
        *,
        debug_resp: bool,
        body_limit: int,
    ) -> Any:
        assert self._session is not None
        t0 = time.perf_counter()
        try:
            async with self._session.get(url, params=query, headers=headers) as resp:
                elapsed_ms = (time.perf_counter() - t0) * 1000.0

                if resp.status in TRANSIENT_STATUSES:
                    text = await resp.text()
                    logger.warning(
                        "reinfolib_resp_transient",
                        extra={
                            "rid": rid,
                            "endpoint": endpoint,
                            "status": resp.status,
                            "elapsed_ms": round(elapsed_ms, 2),
                        },
                    )
                    raise TransientHttpError(f"HTTP {resp.status}", status=resp.status, body=text)

                if resp.status >= 400:
                    text = await resp.text()
                    logger.warning(
                        "reinfolib_http_error",
                        extra={
                            "rid": rid,
                            "endpoint": endpoint,
                            "status": resp.status,
                            "elapsed_ms": round(elapsed_ms, 2),
                            "body_preview": preview(text, body_limit),
                        },
                    )
                    raise ReinfolibApiError.from_response(resp.status, text)

                if query.get("response_format") == "pbf":
                    raw = await resp.read()
                    return {
                        "content_type": resp.headers.get("Content-Type"),
                        "encoding": "base64",
                        "data": base64.b64encode(raw).decode("ascii"),
                    }

                resp_text = await resp.text()
                if debug_resp:
                    logger.info(
                        "reinfolib_resp_ok",
                        extra={
                            "rid": rid,
                            "endpoint": endpoint,
                            "status": resp.status,
                            "elapsed_ms": round(elapsed_ms, 2),
                            "body_size": len(resp_text),
                            "body_preview": preview(resp_text, body_limit),
                        },
                    )

                try:
                    return json.loads(resp_text)
                except json.JSONDecodeError as je:
                    logger.warning(
                        "reinfolib_resp_json_decode_error",
                        extra={"rid": rid, "endpoint": endpoint, "error": str(je)},
                    )
                    raise ReinfolibApiError(
                        f"API Error: {resp.status} - invalid JSON response", status=resp.status
                    ) from je

        except (asyncio.TimeoutError, aiohttp.ClientError) as neterr:
            # retried by tenacity
            logger.warning(
                "reinfolib_network_or_timeout",
                extra={"rid": rid, "endpoint": endpoint, "error": str(neterr)},
            )
            raise TransientHttpError(str(neterr)) from neterr

    # ---------- price / master data ----------
    async def get_price_data(self, params: RealEstatePriceParams) -> Any:
        return await self.get("PriceData", params.to_query())

    async def get_prefecture_municipalities(self, prefecture_code: str) -> Any:
        return await self.get(f"PreMuni/{prefecture_code}")

    async def get_appraisal_data(self, params: AppraisalParams) -> Any:
        return await self.get("AppraisalData", params.to_query())

    # ---------- XYZ tile APIs ----------
    async def get_urban_planning_area(self, z: int, x: int, y: int) -> Any:
        # this endpoint is always requested as GeoJSON
        return await self.get("XKT025", {"response_format": "geojson", "z": z, "x": x, "y": y})

    async def get_real_estate_price_points(self, params: TileParams) -> Any:
        return await self.get("PricePoint", params.to_query())

    async def get_land_price_points(self, params: LandPriceParams) -> Any:
        return await self.get("LandPrice", params.to_query())

    async def get_land_use_zone(self, params: YearTileParams) -> Any:
        return await self.get("LandUseZone", params.to_query())

    async def get_location_optimization_plan(self, params: YearTileParams) -> Any:
        return await self.get("LocationOptimizationPlan", params.to_query())

    async def get_elementary_school_district(self, params: YearTileParams) -> Any:
        return await self.get("ElementarySchoolDistrict", params.to_query())

    async def get_junior_high_school_district(self, params: YearTileParams) -> Any:
        return await self.get("JuniorHighSchoolDistrict", params.to_query())

    async def get_school(self, params: YearTileParams) -> Any:
        return await self.get("School", params.to_query())

    async def get_childcare_facility(self, params: YearTileParams) -> Any:
        return await self.get("ChildcareFacility", params.to_query())

    async def get_medical_facility(self, params: YearTileParams) -> Any:
        return await self.get("MedicalFacility", params.to_query())

    async def get_population_mesh(self, params: PopulationMeshParams) -> Any:
        return await self.get("PopulationMesh", params.to_query())

    async def get_station_passengers(self, params: StationPassengersParams) -> Any:
        return await self.get("StationPassengers", params.to_query())

    async def get_library(self, params: YearTileParams) -> Any:
        return await self.get("Library", params.to_query())

    async def get_disaster_hazard_area(self, params: YearTileParams) -> Any:
        return await self.get("DisasterHazardArea", params.to_query())

    async def get_liquefaction_tendency(self, params: TileParams) -> Any:
        return await self.get("LiquefactionTendency", params.to_query())
