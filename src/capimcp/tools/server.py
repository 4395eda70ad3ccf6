# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/capimcp/tools/server.py
from __future__ import annotations

import logging
import threading
from typing import Optional

from fastmcp import FastMCP

from capimcp.context import AppContext
from capimcp.tools.handlers import TOOL_DESCRIPTIONS, ToolHandlers

log = logging.getLogger("capimcp")


def build_server(ctx: AppContext, *, stop: Optional[threading.Event] = None) -> FastMCP:
    """Register one MCP tool per lifecycle operation."""
    mcp = FastMCP(ctx.config.mcp.name)
    handlers = ToolHandlers(ctx, stop=stop)

    for name, description in TOOL_DESCRIPTIONS.items():
        mcp.tool(getattr(handlers, name), name=name, description=description)

    log.debug("registered %d tools on %s", len(TOOL_DESCRIPTIONS), ctx.config.mcp.name)
    return mcp


def run_server(ctx: AppContext) -> None:
    settings = ctx.config.mcp
    stop = threading.Event()
    mcp = build_server(ctx, stop=stop)

    log.info("Serving %s over %s", settings.name, settings.transport)
    try:
        if settings.transport == "stdio":
            mcp.run(transport="stdio")
        else:
            mcp.run(transport=settings.transport, host=settings.host, port=settings.port)
    finally:
        # wakes any poll-wait still in flight
        stop.set()
        log.info("Server %s stopped", settings.name)
