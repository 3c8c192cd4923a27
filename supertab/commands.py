# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Status, metrics and message-log commands.

Editors bind these to user commands; output goes to a rich console.
"""

from pathlib import Path
from typing import Dict, Optional, Union

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax

from supertab.completion.engine import CompletionEngine
from supertab.message_log import MessageLogger


def show_status(engine: CompletionEngine, console: Optional[Console] = None) -> str:
    """Print whether the engine is running and which transport it uses."""
    console = console or Console()
    status = "running" if engine.is_running else "not running"
    provider = getattr(engine.provider, "name", type(engine.provider).__name__)
    message = f"SuperTab is {status} ({provider})"
    style = "green" if engine.is_running else "yellow"
    console.print(f"[{style}]{message}[/]")
    return message


def show_metrics(engine: CompletionEngine, console: Optional[Console] = None) -> Dict[str, str]:
    """Print the last request's metrics and the engine counters.

    Returns:
        The printed rows, label to value
    """
    console = console or Console()
    last = engine.last_completion_metrics
    totals = engine.metrics
    first_token = "-" if last.first_token_ms is None else f"{last.first_token_ms:.1f}"

    rows = {
        "Tokens (last)": str(last.token_count),
        "Input chars (last)": str(last.input_char_count),
        "Output chars (last)": str(last.output_char_count),
        "Duration ms (last)": f"{last.duration_ms:.1f}",
        "First token ms (last)": first_token,
        "Requests": str(totals.total_requests),
        "Succeeded": str(totals.successful_requests),
        "Failed": str(totals.failed_requests),
        "Cancelled": str(totals.cancelled_requests),
        "Cache hits": str(totals.cache_hits),
        "Timeouts": str(totals.timeouts),
        "Skipped (too large)": str(totals.skipped_oversize),
    }
    body = "\n".join(f"[bold]{label}:[/] {value}" for label, value in rows.items())
    console.print(Panel(body, title="Completion metrics", border_style="cyan"))
    return rows


def show_messages(path: Union[str, Path], console: Optional[Console] = None) -> bool:
    """Print the transport message log.

    Returns:
        False if there is nothing to show
    """
    console = console or Console()
    content = MessageLogger(path).read()
    if not content:
        console.print(f"[dim]No message log found. Messages will be logged to: {path}[/]")
        return False
    console.print(Panel(Syntax(content, "json", line_numbers=False), title=str(path)))
    return True


def clear_messages(path: Union[str, Path], console: Optional[Console] = None) -> None:
    console = console or Console()
    MessageLogger(path).clear()
    console.print("Message log cleared")
