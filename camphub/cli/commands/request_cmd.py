from __future__ import annotations

import asyncio
import base64
import json
from typing import Any

from ..click_compat import RichCommand, click
from ..context import CLIContext
from ..errors import usage_error
from ..options import group_pairs, output_options, parse_pairs
from ..runner import CommandOutput, run_command

_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def _serializable(data: Any) -> Any:
    if isinstance(data, (bytes, bytearray)):
        return {"bytes": len(data), "base64": base64.b64encode(bytes(data)).decode("ascii")}
    return data


@click.command(name="request", cls=RichCommand)
@click.argument("method", type=click.Choice(_METHODS, case_sensitive=False))
@click.argument("endpoint", type=str)
@click.option("-p", "--param", "params", multiple=True, help="Query param key=value (repeatable).")
@click.option("-H", "--header", "headers", multiple=True, help="Header 'Name: value' (repeatable).")
@click.option("--data", type=str, default=None, help="JSON request body (POST/PUT/PATCH).")
@output_options
@click.pass_obj
def request_cmd(
    ctx: CLIContext,
    method: str,
    endpoint: str,
    params: tuple[str, ...],
    headers: tuple[str, ...],
    data: str | None,
) -> None:
    """Send one request and print the decoded response body."""

    def fn(ctx: CLIContext, warnings: list[str]) -> CommandOutput:
        verb = method.upper()
        query = group_pairs(parse_pairs(params, option="--param"))
        extra_headers = dict(parse_pairs(headers, option="--header", sep=":"))

        payload: Any = None
        if data is not None:
            if verb in ("GET", "DELETE"):
                raise usage_error(f"--data is not allowed with {verb}.")
            try:
                payload = json.loads(data)
            except json.JSONDecodeError as exc:
                raise usage_error(f"--data is not valid JSON: {exc.msg}") from exc

        async def _run() -> Any:
            async with ctx.build_client() as api:
                if verb in ("POST", "PUT", "PATCH"):
                    send = getattr(api, verb.lower())
                    return await send(endpoint, payload, params=query, headers=extra_headers)
                return await api.request(
                    endpoint, method=verb, params=query, headers=extra_headers
                )

        response = asyncio.run(_run())
        return CommandOutput(
            data=_serializable(response.data),
            warnings=warnings,
            base_url=ctx.resolve_base_url(),
            status=response.status,
        )

    run_command(ctx, command="request", fn=fn)
