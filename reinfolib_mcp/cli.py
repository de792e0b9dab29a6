"""
Command-line entry point.

Usage:
  reinfolib-mcp -k YOUR_API_KEY                 # HTTP server on 127.0.0.1:3000
  reinfolib-mcp -c mcp.json -p 8080 -H 0.0.0.0
  reinfolib-mcp --stdio                         # MCP stdio transport
"""
import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import ConfigError, load_settings, resolve_runtime_options

MISSING_KEY_HELP = """エラー: APIキーが指定されていません。MCPサーバーを起動できません。
APIキーを指定するには以下のいずれかの方法を使用してください:
1. --api-key オプション: reinfolib-mcp -k YOUR_API_KEY
2. mcp.jsonファイル内の設定:
   {
     "reinfolib-mcp": {
       "apiKey": "YOUR_API_KEY"
     }
   }
3. .env ファイルでREINFOLIB_API_KEYを設定"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reinfolib-mcp",
        description="不動産情報ライブラリAPIを使用するMCPサーバー",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-k", "--api-key", help="不動産情報ライブラリAPIキー")
    parser.add_argument("-p", "--port", help="サーバーのポート番号 (default: 3000)")
    parser.add_argument("-c", "--config", help="mcp.json設定ファイルのパス")
    parser.add_argument("-H", "--host", help="サーバーをバインドするホスト名 (default: 127.0.0.1)")
    parser.add_argument("--stdio", action="store_true", help="HTTPではなくMCP stdioトランスポートで起動する")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        options = resolve_runtime_options(
            api_key=args.api_key,
            port=args.port,
            host=args.host,
            config_path=args.config,
        )
    except ConfigError as e:
        print(f"エラー: {e}", file=sys.stderr)
        return 1

    if not options.api_key:
        print(MISSING_KEY_HELP, file=sys.stderr)
        return 1

    settings = load_settings(options.api_key)

    if args.stdio:
        from .server import run_stdio
        run_stdio(settings)
    else:
        from .http_app import run_http
        run_http(settings, options.host, options.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
