"""Command-line interface for the price monitor."""

import asyncio
import json

import typer

from .config import CONFIG_FILE, settings

app = typer.Typer(help="Retail price checks from plain-language requests")


@app.command()
def check(
    query: str = typer.Argument(..., help="What to look for, e.g. 'Nike Air Force 1 white under 110€'"),
    dry_run: bool = typer.Option(None, "--dry-run/--live", help="Use offline mock parsing and extraction"),
    directed: bool = typer.Option(None, "--directed/--deterministic", help="Let a vision model drive the browser"),
) -> None:
    """Run one price check and print the task response."""
    from .observability import setup_structured_logging
    from .orchestrator import TaskOrchestrator

    setup_structured_logging(settings.server.logging_level)
    orchestrator = TaskOrchestrator(dry_run=dry_run, use_directed=directed)
    response = asyncio.run(orchestrator.process_query(query))
    print(json.dumps(response.to_dict(), indent=2))

    if response.status.value != "OK":
        raise typer.Exit(code=1)


@app.command()
def config(save: bool = typer.Option(False, "--save", help="Write current settings to the config file")) -> None:
    """Show current configuration."""
    print(f"LLM: {settings.llm.provider} / {settings.llm.model_name}")
    print(f"Planner: {settings.planner.model_name} (retries: {settings.planner.max_retries})")
    print(f"Headless: {settings.browser.headless}")
    print(f"Proxy: {settings.browser.proxy_server or '(none)'}")
    print(f"Strategy: {'directed' if settings.agent.use_directed_agent else 'deterministic'}")
    print(f"Dry run: {settings.agent.dry_run}")
    print(f"Max turns: {settings.agent.max_turns}")
    print(f"Min confidence: {settings.agent.min_confidence}")
    print(f"Output: {settings.get_output_dir()}")
    if save:
        path = settings.save()
        print(f"Saved to {path}")
    else:
        print(f"Config file: {CONFIG_FILE}")


@app.command()
def server() -> None:
    """Start the MCP server."""
    from .server import main

    main()


if __name__ == "__main__":
    app()
