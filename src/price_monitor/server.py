"""MCP server exposing the price-check pipeline as tools."""

import json
import logging
import os
import sys
import time

# Keep browser-use quiet before it is imported
os.environ.setdefault("BROWSER_USE_LOGGING_LEVEL", "warning")

from fastmcp import FastMCP  # noqa: E402

from .config import settings  # noqa: E402
from .observability import setup_structured_logging  # noqa: E402
from .orchestrator import TaskOrchestrator, get_orchestrator  # noqa: E402
from .output.results import ResultSink  # noqa: E402
from .output.screenshots import ScreenshotManager  # noqa: E402

logger = logging.getLogger("price_monitor")
logger.setLevel(getattr(logging, settings.server.logging_level.upper()))


def serve() -> FastMCP:
    """Create and configure the MCP server."""
    setup_structured_logging(settings.server.logging_level)

    server = FastMCP("price_monitor")

    @server.tool()
    async def check_price(query: str, dry_run: bool | None = None) -> str:
        """
        Check prices for a product described in plain language.

        Examples: "Find Nike Air Force 1 white under 110€ on Google",
        "Adidas Samba black below 90€ on Zalando or Farfetch".

        Args:
            query: Free-text price-check request
            dry_run: Use offline mock parsing and extraction (defaults to server setting)

        Returns:
            JSON task response with status, parsed request, results and summary
        """
        orchestrator = get_orchestrator()
        if dry_run is not None and dry_run != orchestrator.dry_run:
            orchestrator = TaskOrchestrator(dry_run=dry_run, registry=orchestrator.registry)

        logger.info(f"check_price: {query[:100]}")
        response = await orchestrator.process_query(query)
        return json.dumps(response.to_dict(), indent=2)

    @server.tool()
    async def task_status(task_id: str) -> str:
        """
        Status of a task that is still running.

        Args:
            task_id: Task ID (full or prefix)

        Returns:
            JSON object with the task status, or an error if it is not active
        """
        orchestrator = get_orchestrator()
        status = orchestrator.get_task_status(task_id)
        if status is None:
            for active in orchestrator.get_active_tasks():
                if active["task_id"].startswith(task_id):
                    status = active
                    break
        if status is None:
            return f"Error: Task '{task_id}' is not active. Finished tasks are listed by list_results."
        return json.dumps(status, indent=2)

    @server.tool()
    async def active_tasks() -> str:
        """List tasks currently being processed."""
        tasks = get_orchestrator().get_active_tasks()
        return json.dumps({"tasks": tasks, "count": len(tasks)}, indent=2)

    @server.tool()
    async def list_results(date: str | None = None) -> str:
        """
        List result files, or the records for one day.

        Args:
            date: Optional day in YYYY-MM-DD format

        Returns:
            JSON list of result files, or of the records written that day
        """
        sink = ResultSink()
        if date:
            try:
                records = sink.read_results(date)
            except ValueError:
                return f"Error: Invalid date '{date}'. Use YYYY-MM-DD"
            return json.dumps({"date": date, "records": records, "count": len(records)}, indent=2)
        files = sink.list_result_files()
        return json.dumps({"files": files, "count": len(files)}, indent=2)

    @server.tool()
    async def health_check() -> str:
        """
        Health check with process stats, active tasks and screenshot storage.

        Returns:
            JSON object with server health status
        """
        import psutil

        process = psutil.Process()
        memory_info = process.memory_info()

        return json.dumps(
            {
                "status": "healthy",
                "uptime_seconds": round(time.time() - _server_start_time, 1),
                "memory_mb": round(memory_info.rss / 1024 / 1024, 1),
                "active_tasks": len(get_orchestrator().registry),
                "dry_run": settings.agent.dry_run,
                "strategy": "directed" if settings.agent.use_directed_agent else "deterministic",
                "screenshots": ScreenshotManager().stats(),
            },
            indent=2,
        )

    return server


# Track server start time for uptime calculation
_server_start_time = time.time()


server_instance = serve()


def main() -> None:
    """Entry point for the MCP server."""
    transport = settings.server.transport

    if transport == "stdio":
        server_instance.run(transport="stdio")
    elif transport in ("streamable-http", "sse"):
        logger.info(f"Starting price monitor server (transport: {transport})")
        logger.info(f"HTTP server at http://{settings.server.host}:{settings.server.port}/mcp")
        server_instance.run(transport=transport, host=settings.server.host, port=settings.server.port)
    else:
        print(f"Unknown transport: {transport}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
