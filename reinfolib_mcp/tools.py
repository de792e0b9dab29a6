from typing import Any, Dict, List, Optional, Type

import mcp.types as types
from pydantic import BaseModel, ValidationError

from .client import ReinfolibClient
from .interpreter import parse_natural_language_query
from .schemas import (
    NaturalLanguageQueryInput,
    RealEstatePriceParams,
    AppraisalParams,
    MunicipalitiesParams,
    TileParams,
    YearTileParams,
    LandPriceParams,
    PopulationMeshParams,
    StationPassengersParams,
)
from .utils import logger


class ToolError(RuntimeError):
    pass


class UnknownToolError(ToolError):
    def __init__(self, name: str):
        super().__init__(f"Tool {name} not found")
        self.name = name


class InvalidToolArguments(ToolError):
    pass


class ToolExecutionError(ToolError):
    pass


# ---------- shared input schemas ----------
_TILE_PROPERTIES: Dict[str, Any] = {
    "response_format": {
        "type": "string",
        "description": "レスポンス形式 (geojson または pbf)",
        "enum": ["geojson", "pbf"],
    },
    "z": {
        "type": "integer",
        "description": "ズームレベル（APIごとに指定可能な範囲が異なる場合あり）",
    },
    "x": {
        "type": "integer",
        "description": "タイル座標のX値",
    },
    "y": {
        "type": "integer",
        "description": "タイル座標のY値",
    },
}
_YEAR_TILE_PROPERTIES: Dict[str, Any] = {
    **_TILE_PROPERTIES,
    "year": {"type": "string", "description": "年度（YYYY形式, 任意）"},
}
_TILE_REQUIRED = ["response_format", "z", "x", "y"]


def _tile_tool(name: str, description: str, properties: Optional[Dict[str, Any]] = None) -> types.Tool:
    return types.Tool(
        name=name,
        description=description,
        inputSchema={
            "type": "object",
            "properties": properties or _YEAR_TILE_PROPERTIES,
            "required": _TILE_REQUIRED,
        },
    )


# ---------- tools catalog ----------
TOOLS: List[types.Tool] = [
    types.Tool(
        name="searchRealEstateByNaturalLanguage",
        description="""自然言語による検索クエリから不動産取引価格情報を検索します。

            例: 「東京都新宿区の2022年の物件情報を5件取得」

            抽出される条件:
            - 都道府県（東京都・大阪府・愛知県・神奈川県・北海道・京都府・兵庫県・福岡県）
            - 市区町村名（「〜市」「〜区」「〜町」「〜村」、キーワードとして利用）
            - 価格帯（「1000万円以上」「2000万円以下」）
            - 面積（「50平方メートル」）
            - 取引年（「2022年」→ その年の第1〜第4四半期）

            注意:
            - 取得件数は常に10件です（「5件」などの指定は反映されません）。
            - 年の指定は四半期単位の指定があっても年全体として扱われます。""",
        inputSchema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "検索したい不動産情報を自然言語で指定してください。「都道府県名」「市区町村名」「価格帯」「面積」「取引年」などを含めることができます。",
                },
            },
            "required": ["query"],
        },
    ),
    types.Tool(
        name="searchRealEstateByParams",
        description="特定のパラメータを指定して不動産取引価格情報を検索します。少なくとも1つのパラメータが必要です。",
        inputSchema={
            "type": "object",
            "properties": {
                "prefecture": {"type": "string", "description": "都道府県コード (例: 13 = 東京都)"},
                "city": {"type": "string", "description": "市区町村コード"},
                "from": {"type": "string", "description": "検索期間（開始）YYYY-Q[1-4] 例: 2020-1"},
                "to": {"type": "string", "description": "検索期間（終了）YYYY-Q[1-4] 例: 2020-4"},
                "minTradePrice": {"type": "string", "description": "最低取引価格（円）"},
                "maxTradePrice": {"type": "string", "description": "最高取引価格（円）"},
                "area": {"type": "string", "description": "面積（平方メートル）"},
                "keywords": {"type": "string", "description": "キーワード（地区名、住所など）"},
                "limit": {"type": "integer", "description": "取得件数制限"},
            },
        },
    ),
    types.Tool(
        name="getMunicipalities",
        description="指定した都道府県の市区町村一覧を取得します。",
        inputSchema={
            "type": "object",
            "properties": {
                "prefectureCode": {"type": "string", "description": "都道府県コード (例: 13 = 東京都)"},
            },
            "required": ["prefectureCode"],
        },
    ),
    _tile_tool(
        "getUrbanPlanningDistrict",
        "都市計画決定GISデータ（都市計画区域/区域区分）をXYZタイル座標で取得します。常にGeoJSONで返します。",
        _TILE_PROPERTIES,
    ),
    types.Tool(
        name="getAppraisal",
        description="鑑定評価書情報を検索します。",
        inputSchema={
            "type": "object",
            "properties": {
                "id": {"type": "string", "description": "鑑定評価書ID"},
                "prefecture": {"type": "string", "description": "都道府県コード"},
                "city": {"type": "string", "description": "市区町村コード"},
                "keywords": {"type": "string", "description": "キーワード"},
                "limit": {"type": "integer", "description": "取得件数制限"},
            },
        },
    ),
    _tile_tool(
        "getRealEstatePricePointData",
        "不動産価格（取引価格・成約価格）情報のポイント (点) をXYZタイル座標で取得します。",
        _TILE_PROPERTIES,
    ),
    _tile_tool(
        "getLandPricePointData",
        "地価公示・地価調査のポイント（点）をXYZタイル座標で取得します。",
        {
            **_YEAR_TILE_PROPERTIES,
            "type": {"type": "string", "description": "情報種別 (任意)"},
            "prefecture": {"type": "string", "description": "都道府県コード (任意)"},
            "city": {"type": "string", "description": "市区町村コード (任意)"},
        },
    ),
    _tile_tool("getLandUseZone", "都市計画決定GISデータ（用途地域）をXYZタイル座標で取得します。"),
    _tile_tool("getLocationOptimizationPlan", "都市計画決定GISデータ（立地適正化計画）をXYZタイル座標で取得します。"),
    _tile_tool("getElementarySchoolDistrict", "国土数値情報（小学校区）をXYZタイル座標で取得します。"),
    _tile_tool("getJuniorHighSchoolDistrict", "国土数値情報（中学校区）をXYZタイル座標で取得します。"),
    _tile_tool("getSchool", "国土数値情報（学校）をXYZタイル座標で取得します。"),
    _tile_tool("getChildcareFacility", "国土数値情報（保育園・幼稚園等）をXYZタイル座標で取得します。"),
    _tile_tool("getMedicalFacility", "国土数値情報（医療機関）をXYZタイル座標で取得します。"),
    _tile_tool(
        "getPopulationMesh",
        "国土数値情報（将来推計人口250mメッシュ）をXYZタイル座標で取得します。",
        {
            **_TILE_PROPERTIES,
            "year": {"type": "string", "description": "予測年 (YYYY形式, 任意)"},
            "type": {"type": "string", "description": "人口タイプ (任意、総人口など)"},
        },
    ),
    _tile_tool(
        "getStationPassengers",
        "国土数値情報（駅別乗降客数）をXYZタイル座標で取得します。",
        {
            **_YEAR_TILE_PROPERTIES,
            "company_type": {"type": "string", "description": "事業者種別 (任意)"},
        },
    ),
    _tile_tool("getLibrary", "国土数値情報（図書館）をXYZタイル座標で取得します。"),
    _tile_tool("getDisasterHazardArea", "国土数値情報（災害危険区域）をXYZタイル座標で取得します。"),
    _tile_tool(
        "getLiquefactionTendency",
        "国土交通省都市局（地形区分に基づく液状化の発生傾向図）をXYZタイル座標で取得します。",
        _TILE_PROPERTIES,
    ),
]

TOOL_NAMES = [t.name for t in TOOLS]

# what each tool was doing, used in error messages
ERROR_LABELS: Dict[str, str] = {
    "searchRealEstateByNaturalLanguage": "不動産情報の検索",
    "searchRealEstateByParams": "不動産情報の検索",
    "getMunicipalities": "市区町村一覧の取得",
    "getUrbanPlanningDistrict": "都市計画区域/区域区分情報の取得",
    "getAppraisal": "鑑定評価書情報の取得",
    "getRealEstatePricePointData": "不動産価格ポイント情報の取得",
    "getLandPricePointData": "地価公示・地価調査情報の取得",
    "getLandUseZone": "用途地域データの取得",
    "getLocationOptimizationPlan": "立地適正化計画データの取得",
    "getElementarySchoolDistrict": "小学校区データの取得",
    "getJuniorHighSchoolDistrict": "中学校区データの取得",
    "getSchool": "学校データの取得",
    "getChildcareFacility": "保育園・幼稚園等データの取得",
    "getMedicalFacility": "医療機関データの取得",
    "getPopulationMesh": "将来推計人口メッシュデータの取得",
    "getStationPassengers": "駅別乗降客数データの取得",
    "getLibrary": "図書館データの取得",
    "getDisasterHazardArea": "災害危険区域データの取得",
    "getLiquefactionTendency": "液状化発生傾向図データの取得",
}

INPUT_MODELS: Dict[str, Type[BaseModel]] = {
    "searchRealEstateByNaturalLanguage": NaturalLanguageQueryInput,
    "searchRealEstateByParams": RealEstatePriceParams,
    "getMunicipalities": MunicipalitiesParams,
    "getUrbanPlanningDistrict": TileParams,
    "getAppraisal": AppraisalParams,
    "getRealEstatePricePointData": TileParams,
    "getLandPricePointData": LandPriceParams,
    "getLandUseZone": YearTileParams,
    "getLocationOptimizationPlan": YearTileParams,
    "getElementarySchoolDistrict": YearTileParams,
    "getJuniorHighSchoolDistrict": YearTileParams,
    "getSchool": YearTileParams,
    "getChildcareFacility": YearTileParams,
    "getMedicalFacility": YearTileParams,
    "getPopulationMesh": PopulationMeshParams,
    "getStationPassengers": StationPassengersParams,
    "getLibrary": YearTileParams,
    "getDisasterHazardArea": YearTileParams,
    "getLiquefactionTendency": TileParams,
}

# tools that forward their validated params to a single client method
PASSTHROUGH_METHODS: Dict[str, str] = {
    "getAppraisal": "get_appraisal_data",
    "getRealEstatePricePointData": "get_real_estate_price_points",
    "getLandPricePointData": "get_land_price_points",
    "getLandUseZone": "get_land_use_zone",
    "getLocationOptimizationPlan": "get_location_optimization_plan",
    "getElementarySchoolDistrict": "get_elementary_school_district",
    "getJuniorHighSchoolDistrict": "get_junior_high_school_district",
    "getSchool": "get_school",
    "getChildcareFacility": "get_childcare_facility",
    "getMedicalFacility": "get_medical_facility",
    "getPopulationMesh": "get_population_mesh",
    "getStationPassengers": "get_station_passengers",
    "getLibrary": "get_library",
    "getDisasterHazardArea": "get_disaster_hazard_area",
    "getLiquefactionTendency": "get_liquefaction_tendency",
}


def describe_tools() -> List[Dict[str, Any]]:
    """Tool catalog in the /.well-known/mcp shape."""
    return [
        {"name": t.name, "description": t.description, "parameters": t.inputSchema}
        for t in TOOLS
    ]


def result_count(results: Any) -> int:
    """Length of a result list, either bare or under the API's `data` envelope."""
    if isinstance(results, list):
        return len(results)
    if isinstance(results, dict) and isinstance(results.get("data"), list):
        return len(results["data"])
    return 0


def _error_message(name: str, cause: Any) -> str:
    return f"{ERROR_LABELS[name]}中にエラーが発生しました: {cause}"


def _validation_summary(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ())) or "arguments"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def parse_arguments(name: str, arguments: Optional[Dict[str, Any]]) -> BaseModel:
    if name not in INPUT_MODELS:
        raise UnknownToolError(name)
    try:
        return INPUT_MODELS[name].model_validate(arguments or {})
    except ValidationError as e:
        raise InvalidToolArguments(_error_message(name, _validation_summary(e))) from e


# ---------- tools handler ----------
async def call_tool(name: str, arguments: Optional[Dict[str, Any]], client: ReinfolibClient) -> Any:
    """
    Validate `arguments` for tool `name`, run it against reinfolib and return
    JSON-serializable data. Failures surface as ToolError subclasses.
    """
    p = parse_arguments(name, arguments)

    if name == "searchRealEstateByParams" and not p.to_query():
        raise InvalidToolArguments(_error_message(name, "少なくとも1つのパラメータを指定してください"))

    try:
        if name == "searchRealEstateByNaturalLanguage":
            criteria = parse_natural_language_query(p.query)
            logger.info("nl_query_parsed", extra={"query": p.query, "parameters": criteria.as_dict()})
            results = await client.get_price_data(criteria.to_price_params())
            return {
                "count": result_count(results),
                "query": p.query,
                "parameters": criteria.as_dict(),
                "results": results,
            }

        elif name == "searchRealEstateByParams":
            results = await client.get_price_data(p)
            return {
                "count": result_count(results),
                "parameters": p.to_query(),
                "results": results,
            }

        elif name == "getMunicipalities":
            return await client.get_prefecture_municipalities(p.prefecture_code)

        elif name == "getUrbanPlanningDistrict":
            return await client.get_urban_planning_area(p.z, p.x, p.y)

        else:
            method = getattr(client, PASSTHROUGH_METHODS[name])
            return await method(p)

    except Exception as e:
        logger.warning("tool_failed", extra={"tool": name, "error": str(e)})
        raise ToolExecutionError(_error_message(name, e)) from e
