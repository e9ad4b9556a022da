# ABOUTME: Local-network HTTP gateway for Claude Code History.
# ABOUTME: Provides the FastAPI application, change-notification stream and server lifecycle.

from claude_code_history.server.app import GatewayServer, create_app, run_gateway

__all__ = ["GatewayServer", "create_app", "run_gateway"]
