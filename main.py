#!/usr/bin/env python3
"""MCP Client CLI - Main entry point.

Connects to an MCP tool server, lists the tools it exposes and optionally
invokes one of them.

================================================================================
QUICK START
================================================================================

Launch a local stdio server and call a tool:

    export MCP_SERVER_COMMAND="node ../mcp-ep-server/dist/index.js"
    export EP_BASE_URL="https://api.example.com"
    export EP_ACCESS_TOKEN="..."
    python main.py --call listFiles --arg limit=5

Or talk to a server that is already running behind an SSE endpoint:

    python main.py --url http://localhost:3000/sse --call getFile --arg fileId=abc

EP_BASE_URL and EP_ACCESS_TOKEN are forwarded to every tool call as the
baseUrl and accessToken arguments. The client never inspects them.

A YAML config file can replace the environment (see config/client.yaml):

    python main.py --config config/client.yaml --call listFiles

================================================================================
"""

from __future__ import annotations

import sys

from mcp_client_cli.cli import main

if __name__ == "__main__":
    sys.exit(main())
