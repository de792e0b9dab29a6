from dotenv import load_dotenv
load_dotenv()

import json
import os
import pathlib
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, HttpUrl, ValidationError

from .utils import logger

DEFAULT_BASE_URL = "https://www.reinfolib.mlit.go.jp/ex-api/external"
DEFAULT_PORT = 3000
DEFAULT_HOST = "127.0.0.1"

# sections of mcp.json this server reads (current name first, then legacy)
CONFIG_SECTIONS = ("reinfolib-mcp", "realestate-library-mcp")


class ConfigError(RuntimeError):
    pass


class Settings(BaseModel):
    # reinfolib endpoint & subscription key (REQUIRED)
    base_url: HttpUrl = Field(
        default=os.getenv("REINFOLIB_BASE_URL") or DEFAULT_BASE_URL
    )
    api_key: str = Field(..., alias="REINFOLIB_API_KEY", min_length=1)

    # HTTP & reliability
    timeout_s: float = 30.0
    max_retries: int = 3
    backoff_base_s: float = 0.5
    rps: float = 4.0  # light rate limit

    # tool output cap (MCP text content)
    max_response_bytes: int = 1024 * 1024


def load_settings(api_key: Optional[str] = None) -> Settings:
    env = {
        "REINFOLIB_API_KEY": api_key or os.getenv("REINFOLIB_API_KEY"),
        # base_url is automatically set by default
    }
    try:
        return Settings.model_validate(env)
    except ValidationError as e:
        raise ConfigError(
            "Config error: set ENV REINFOLIB_API_KEY (and optionally REINFOLIB_BASE_URL)."
        ) from e


# ---------- mcp.json ----------
def _resolve(path: Union[str, pathlib.Path]) -> pathlib.Path:
    p = pathlib.Path(path)
    return p if p.is_absolute() else pathlib.Path.cwd() / p


def load_mcp_config(path: Union[str, pathlib.Path]) -> Dict[str, Any]:
    """
    Read this server's section from an mcp.json file.
    Unreadable / malformed files are logged and treated as empty.
    """
    config_path = _resolve(path)
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.error("config_load_failed", extra={"path": str(config_path), "error": str(e)})
        return {}
    if not isinstance(raw, dict):
        logger.error("config_load_failed", extra={"path": str(config_path), "error": "not an object"})
        return {}
    for key in CONFIG_SECTIONS:
        section = raw.get(key)
        if isinstance(section, dict):
            return section
    return {}


class RuntimeOptions(BaseModel):
    api_key: Optional[str] = None
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST


def resolve_runtime_options(
    *,
    api_key: Optional[str] = None,
    port: Optional[Union[int, str]] = None,
    host: Optional[str] = None,
    config_path: Optional[str] = None,
) -> RuntimeOptions:
    """
    Merge CLI flags, config files and environment.
    Priority: CLI flag > --config file > MCP_CONFIG file > ENV > defaults.
    An explicit config_path that does not exist is an error; a missing
    MCP_CONFIG file is silently ignored.
    """
    config: Dict[str, Any] = {}

    env_config = os.getenv("MCP_CONFIG")
    if env_config and _resolve(env_config).exists():
        config.update(load_mcp_config(env_config))

    if config_path:
        if not _resolve(config_path).exists():
            raise ConfigError(f"config file not found: {config_path}")
        config.update(load_mcp_config(config_path))

    resolved_port = port or config.get("port") or os.getenv("PORT") or DEFAULT_PORT
    try:
        return RuntimeOptions(
            api_key=api_key or config.get("apiKey") or os.getenv("REINFOLIB_API_KEY"),
            port=resolved_port,
            host=host or config.get("host") or DEFAULT_HOST,
        )
    except ValidationError as e:
        raise ConfigError(f"invalid port: {resolved_port!r}") from e
