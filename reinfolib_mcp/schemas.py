from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Literal, Optional

DEFAULT_LIMIT = 10


class QueryModel(BaseModel):
    """Tool input that is forwarded as a reinfolib query string."""
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    def to_query(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# =========================
# NATURAL LANGUAGE SEARCH
# =========================
class SearchCriteria(BaseModel):
    """
    Parameters extracted from a free-text query.
    Every field except `limit` is optional and left as None when not found.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    prefecture_code: Optional[str] = Field(default=None, alias="prefectureCode")
    keywords: Optional[str] = None
    min_trade_price: Optional[str] = Field(default=None, alias="minTradePrice")
    max_trade_price: Optional[str] = Field(default=None, alias="maxTradePrice")
    area: Optional[str] = None
    from_: Optional[str] = Field(default=None, alias="from")  # YYYY-Q
    to: Optional[str] = None  # YYYY-Q
    limit: int = DEFAULT_LIMIT

    def as_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_price_params(self) -> "RealEstatePriceParams":
        return RealEstatePriceParams(
            prefecture=self.prefecture_code,
            keywords=self.keywords,
            min_trade_price=self.min_trade_price,
            max_trade_price=self.max_trade_price,
            area=self.area,
            from_=self.from_,
            to=self.to,
            limit=self.limit,
        )


class NaturalLanguageQueryInput(BaseModel):
    query: str


# =========================
# PRICE / APPRAISAL / MUNICIPALITIES
# =========================
class RealEstatePriceParams(QueryModel):
    from_: Optional[str] = Field(default=None, alias="from")  # YYYY-Q, e.g. 2020-1
    to: Optional[str] = None
    city: Optional[str] = None  # municipality code
    prefecture: Optional[str] = None  # prefecture code
    area: Optional[str] = None
    min_trade_price: Optional[str] = Field(default=None, alias="minTradePrice")
    max_trade_price: Optional[str] = Field(default=None, alias="maxTradePrice")
    min_price_per_square_meter: Optional[str] = Field(default=None, alias="minPricePerSquareMeter")
    max_price_per_square_meter: Optional[str] = Field(default=None, alias="maxPricePerSquareMeter")
    keywords: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)


class AppraisalParams(QueryModel):
    id: Optional[str] = None
    prefecture: Optional[str] = None
    city: Optional[str] = None
    keywords: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)


class MunicipalitiesParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    prefecture_code: str = Field(..., alias="prefectureCode", pattern=r"^\d{2}$")


# =========================
# XYZ TILE APIs
# =========================
class TileParams(QueryModel):
    response_format: Literal["geojson", "pbf"]
    z: int = Field(..., ge=0)
    x: int = Field(..., ge=0)
    y: int = Field(..., ge=0)


class YearTileParams(TileParams):
    year: Optional[str] = Field(default=None, pattern=r"^\d{4}$")


class LandPriceParams(YearTileParams):
    type_: Optional[str] = Field(default=None, alias="type")
    prefecture: Optional[str] = None
    city: Optional[str] = None


class PopulationMeshParams(YearTileParams):
    type_: Optional[str] = Field(default=None, alias="type")  # total population etc.


class StationPassengersParams(YearTileParams):
    company_type: Optional[str] = None
