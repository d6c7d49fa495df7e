"""MCP server exposing the metadata explorer as tools."""

from __future__ import annotations

import json
import logging

from mcp.server.fastmcp import FastMCP

from .config import ExplorerConfig
from .session import inspect_static, run_inspect

logger = logging.getLogger("og_explorer.mcp")
logger.setLevel(logging.ERROR)

mcp = FastMCP(name="og-explorer")


@mcp.tool()
async def inspect_metadata(url: str, static: bool = False) -> str:
    """Render a web page and return its share metadata as JSON."""

    config = ExplorerConfig.from_env()
    if static:
        result = await inspect_static(url, config)
    else:
        results = await run_inspect([url], config)
        result = results[0] if results else None
    if result is None:
        raise RuntimeError(f"Failed to inspect {url}")
    return json.dumps(result.state.to_dict(), ensure_ascii=False)


def main() -> None:
    """Entry point for running the MCP server."""
    logging.basicConfig(level=logging.ERROR)
    mcp.run()


if __name__ == "__main__":
    main()
