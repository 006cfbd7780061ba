from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from typing import Any, cast

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .results import CommandResult


@dataclass(frozen=True, slots=True)
class RenderSettings:
    output: str  # "table" | "json"
    quiet: bool
    verbosity: int


def _error_title(error_type: str) -> str:
    mapping = {
        "usage_error": "Usage error",
        "not_found": "Not found",
        "config_error": "Configuration error",
        "auth_error": "Authentication error",
        "forbidden": "Permission denied",
        "rate_limited": "Rate limited",
        "server_error": "Server error",
        "network_error": "Network error",
        "timeout": "Timeout",
        "decode_error": "Invalid response",
        "api_error": "API error",
        "internal_error": "Internal error",
    }
    return mapping.get((error_type or "").strip(), "Error")


def _format_scalar(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, list):
        if all(isinstance(v, (str, int, float)) for v in value):
            return ", ".join(str(v) for v in value)
        return f"list ({len(value):,} items)"
    if isinstance(value, dict):
        return f"object ({len(value):,} keys)"
    return str(value)


def _table_from_rows(rows: list[dict[str, Any]]) -> Table:
    columns: list[str] = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(str(key))
    table = Table(show_header=True, header_style="bold")
    for col in columns:
        table.add_column(col)
    for row in rows:
        table.add_row(*[_format_scalar(row.get(col)) for col in columns])
    return table


def _kv_table(obj: dict[str, Any]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("field")
    table.add_column("value")
    for k, v in obj.items():
        table.add_row(str(k), _format_scalar(v))
    return table


def _render_human_data(data: Any, *, verbosity: int) -> Any:
    if isinstance(data, list) and data and all(isinstance(x, dict) for x in data):
        return _table_from_rows(cast(list[dict[str, Any]], data))
    if isinstance(data, dict):
        if not data:
            return Panel.fit(Text("OK"))
        sections: list[Any] = [_kv_table(data)]
        if verbosity >= 1:
            for key, value in data.items():
                if isinstance(value, list) and value and all(isinstance(x, dict) for x in value):
                    sections.append(Text(str(key), style="bold"))
                    sections.append(_table_from_rows(cast(list[dict[str, Any]], value)))
        return Group(*sections) if len(sections) > 1 else sections[0]
    if isinstance(data, (bytes, bytearray)):
        return Text(f"<{len(data):,} bytes>")
    return Panel.fit(Text(str(data) if data is not None else "OK"))


def render_result(result: CommandResult, *, settings: RenderSettings) -> int:
    stdout = Console(file=sys.stdout, force_terminal=False)
    stderr = Console(file=sys.stderr, force_terminal=False)

    if settings.output == "json":
        payload = result.model_dump(by_alias=True, mode="json")
        sys.stdout.write(json.dumps(payload, ensure_ascii=False) + "\n")
        return 0

    if not result.ok:
        if result.error is None:
            stderr.print("Error")
            return 0
        title = _error_title(result.error.type)
        status = f" [{result.error.status}]" if result.error.status else ""
        stderr.print(f"{title}{status}: {result.error.message}", markup=False)
        if settings.quiet:
            return 0
        if result.error.hint:
            stderr.print(f"Hint: {result.error.hint}", markup=False)
        elif result.error.type == "usage_error":
            stderr.print(f"Hint: run `camphub {result.command} --help`", markup=False)
        if result.error.details and settings.verbosity >= 1:
            stderr.print(
                Panel.fit(Text(json.dumps(result.error.details, ensure_ascii=False, indent=2)))
            )
        return 0

    if result.command == "version" and isinstance(result.data, dict):
        renderable: Any = Text(str(result.data.get("version", "")), style="bold")
    else:
        renderable = _render_human_data(result.data, verbosity=settings.verbosity)
    stdout.print(renderable)
    return 0
