from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar

from .click_compat import click
from .context import CLIContext
from .errors import usage_error

F = TypeVar("F", bound=Callable[..., object])


def _set_output(ctx: click.Context, _param: click.Parameter, value: str | None) -> str | None:
    if value is None:
        return value
    obj = ctx.obj
    if isinstance(obj, CLIContext):
        obj.output = value  # type: ignore[assignment]
    return value


def _set_json(ctx: click.Context, _param: click.Parameter, value: bool) -> bool:
    if not value:
        return value
    obj = ctx.obj
    if isinstance(obj, CLIContext):
        obj.output = "json"
    return value


def output_options(fn: F) -> F:
    fn = click.option(
        "--output",
        type=click.Choice(["table", "json"]),
        default=None,
        help="Override output format for this command.",
        callback=_set_output,
        expose_value=False,
    )(fn)
    fn = click.option(
        "--json",
        is_flag=True,
        help="Alias for --output json.",
        callback=_set_json,
        expose_value=False,
    )(fn)
    return fn


def parse_pairs(values: tuple[str, ...], *, option: str, sep: str = "=") -> list[tuple[str, str]]:
    """Parse repeated `key<sep>value` options, keeping order and repeats."""
    pairs: list[tuple[str, str]] = []
    for raw in values:
        key, found, value = raw.partition(sep)
        key = key.strip()
        if not found or not key:
            raise usage_error(f"Invalid {option} value {raw!r}; expected key{sep}value.")
        pairs.append((key, value.strip() if sep == ":" else value))
    return pairs


def group_pairs(pairs: list[tuple[str, str]]) -> dict[str, str | list[str]]:
    """Collapse repeated keys into lists (query params repeat the key per element)."""
    grouped: dict[str, str | list[str]] = {}
    for key, value in pairs:
        existing = grouped.get(key)
        if existing is None:
            grouped[key] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            grouped[key] = [existing, value]
    return grouped
