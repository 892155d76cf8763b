"""MCP server implementation."""
import asyncio
import json
from typing import Any, Dict, List, Optional

import mcp.types as types
from mcp.server import stdio
from mcp.server.lowlevel import Server
from mcp.server.models import InitializationOptions

from pyisolate.errors import IsolateError, log_error
from pyisolate.logging import configure_logging, get_logger
from pyisolate.options import resolve_environment
from pyisolate.sandboxes.sandbox import Sandbox

logger = get_logger("server")

ENVIRONMENT_SCHEMA = {
    "type": "object",
    "properties": {
        "environment": {
            "type": "string",
            "description": "Environment name (defaults to ISOLATE_ENV, APP_ENV, FLASK_ENV or development)",
        }
    },
}

tools = [
    types.Tool(
        name="isolate_status",
        description="Describe the sandbox: isolation path, declared and installed packages",
        inputSchema={"type": "object", "properties": {}},
    ),
    types.Tool(
        name="isolate_install",
        description="Install declared packages missing from the isolation path",
        inputSchema=ENVIRONMENT_SCHEMA,
    ),
    types.Tool(
        name="isolate_activate",
        description="Enable the sandbox, install missing packages, activate them and clean up",
        inputSchema=ENVIRONMENT_SCHEMA,
    ),
    types.Tool(
        name="isolate_cleanup",
        description="Remove installed packages no longer reachable from the declarations",
        inputSchema={"type": "object", "properties": {}},
    ),
    types.Tool(
        name="isolate_disable",
        description="Restore the process environment saved when the sandbox was enabled",
        inputSchema={"type": "object", "properties": {}},
    ),
]


def describe(sandbox: Sandbox) -> Dict[str, Any]:
    return {
        "id": sandbox.id,
        "path": str(sandbox.path),
        "enabled": sandbox.enabled,
        "files": list(sandbox.files),
        "options": sandbox.options.as_dict(),
        "entries": [
            {
                "name": e.name,
                "requirement": e.constraint,
                "environments": sorted(e.environments),
            }
            for e in sandbox.entries
        ],
        "installed": [s.full_name for s in sandbox.manager.all_installed()],
        "activated": [s.full_name for s in sandbox.activated],
    }


def _text(payload: Dict[str, Any]) -> List[types.TextContent]:
    return [types.TextContent(type="text", text=json.dumps(payload, default=str))]


async def init_server(sandbox: Optional[Sandbox] = None) -> Server:
    logger.info(f"Registered tools: {', '.join(t.name for t in tools)}")

    sandbox = sandbox or Sandbox()
    server = Server("pyisolate")

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        logger.debug("Tools requested")
        return tools

    @server.call_tool()
    async def call_tool(
        name: str, arguments: Dict[str, Any]
    ) -> list[types.TextContent | types.ImageContent | types.EmbeddedResource]:
        arguments = arguments or {}
        try:
            logger.debug(f"Tool called: {name} with args: {arguments}")

            if name == "isolate_status":
                return _text({"success": True, "data": await asyncio.to_thread(describe, sandbox)})

            elif name == "isolate_install":
                await asyncio.to_thread(sandbox.enable)
                installed = await asyncio.to_thread(
                    sandbox.install,
                    sandbox_environment(sandbox, arguments.get("environment")),
                )
                return _text(
                    {
                        "success": True,
                        "data": {"installed": [e.name for e in installed]},
                    }
                )

            elif name == "isolate_activate":
                await asyncio.to_thread(sandbox.activate, arguments.get("environment"))
                return _text({"success": True, "data": await asyncio.to_thread(describe, sandbox)})

            elif name == "isolate_cleanup":
                if not sandbox.options.cleanup_enabled:
                    return _text(
                        {
                            "success": False,
                            "error": "Cleanup is disabled (needs both install and cleanup options)",
                        }
                    )
                removed = await asyncio.to_thread(sandbox.cleanup)
                return _text(
                    {
                        "success": True,
                        "data": {"removed": [s.full_name for s in removed]},
                    }
                )

            elif name == "isolate_disable":
                await asyncio.to_thread(sandbox.disable)
                return _text({"success": True, "data": {"enabled": sandbox.enabled}})

            return _text({"success": False, "error": f"Unknown tool: {name}"})

        except IsolateError as e:
            log_error(e, {"tool": name}, logger=logger)
            return _text(
                {
                    "success": False,
                    "error": str(e),
                    "error_data": e.to_error_data().model_dump(),
                }
            )

    return server


def sandbox_environment(sandbox: Sandbox, environment: Optional[str]) -> str:
    return resolve_environment(environment, sandbox.process.environ)


async def serve() -> None:
    configure_logging()
    logger.info("Starting pyisolate MCP server")
    server = await init_server()
    async with stdio.stdio_server() as (read_stream, write_stream):
        init_options = InitializationOptions(
            server_name="pyisolate",
            server_version="0.1.0",
            capabilities=types.ServerCapabilities(
                tools=types.ToolsCapability(listChanged=False),
                logging=types.LoggingCapability(),
            ),
        )
        await server.run(read_stream, write_stream, init_options)


def main() -> None:
    """Run the MCP server."""
    asyncio.run(serve())
