"""
Telegent — Console & Log Output

Module loggers come from logging.getLogger(__name__); setup_logging()
routes the "telegent" hierarchy through a rich handler once per process.
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel

console = Console()

ROOT_LOGGER = "telegent"


def setup_logging(
    level: str = "INFO",
    debug: bool = False,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """Install handlers on the package logger. Safe to call repeatedly."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO))
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=console, show_path=debug, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
    if log_file:
        path = Path(os.path.abspath(log_file))
        already = any(
            isinstance(h, logging.FileHandler) and Path(h.baseFilename) == path
            for h in logger.handlers
        )
        if not already:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding="utf-8")
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
            )
            logger.addHandler(file_handler)
    logger.propagate = False
    return logger


def print_turn_summary(debug: Dict[str, Any]):
    if not debug:
        return
    lines = []
    trail = debug.get("states", [])
    if trail:
        lines.append(f"[dim]{' → '.join(trail)}[/dim]")

    command = debug.get("command")
    if command:
        lines.append(f"[cyan]⚙ {escape(command)}[/cyan]")
    elif debug.get("decision_skipped"):
        lines.append("[dim]  no capabilities registered, decision skipped[/dim]")
    else:
        lines.append("[dim]  no capability selected[/dim]")

    if debug.get("capability_result") is not None:
        lines.append(f"[green]↳ {escape(debug['capability_result'][:120])}[/green]")
    if debug.get("media_short_circuit"):
        lines.append("[magenta]🖼 media reply, answer call skipped[/magenta]")

    facts = debug.get("facts_added", [])
    for fact in facts:
        lines.append(f"[yellow]📌 {escape(fact)}[/yellow]")

    if debug.get("error"):
        lines.append(f"[red]⚠ {escape(debug['error'])}[/red]")

    elapsed = debug.get("elapsed_ms")
    title = f"[bold blue]Turn {escape(str(debug.get('conversation_id', '')))}[/bold blue]"
    if elapsed is not None:
        title += f" [dim]{elapsed:.0f}ms[/dim]"
    console.print(Panel("\n".join(lines), title=title, border_style="blue", padding=(0, 1)))
