from __future__ import annotations

import asyncio
from typing import Any

from camphub.batch import DEFAULT_CONCURRENCY, batch_requests

from ..click_compat import RichCommand, click
from ..context import CLIContext
from ..errors import usage_error
from ..options import output_options
from ..progress import ProgressManager, ProgressSettings
from ..runner import CommandOutput, run_command


@click.command(name="batch", cls=RichCommand)
@click.argument("endpoints", nargs=-1, required=True)
@click.option(
    "--concurrency",
    type=int,
    default=DEFAULT_CONCURRENCY,
    show_default=True,
    help="Maximum requests in flight at once.",
)
@output_options
@click.pass_obj
def batch_cmd(ctx: CLIContext, endpoints: tuple[str, ...], concurrency: int) -> None:
    """GET several endpoints, a window of --concurrency at a time."""

    def fn(ctx: CLIContext, warnings: list[str]) -> CommandOutput:
        if concurrency <= 0:
            raise usage_error("--concurrency must be >= 1.")

        windows: list[int] = []

        async def _run() -> list[Any]:
            settings = ProgressSettings(mode=ctx.progress, quiet=ctx.quiet)
            async with ctx.build_client() as api:
                with ProgressManager(settings=settings) as pm:
                    _, bar = pm.count_task(description="Fetching", total=len(endpoints))

                    def on_progress(completed: int, total: int) -> None:
                        windows.append(completed)
                        bar(completed, total)

                    responses = await batch_requests(
                        [lambda endpoint=endpoint: api.get(endpoint) for endpoint in endpoints],
                        concurrency=concurrency,
                        on_progress=on_progress,
                    )
            return [
                {"endpoint": endpoint, "status": response.status, "data": response.data}
                for endpoint, response in zip(endpoints, responses)
            ]

        results = asyncio.run(_run())
        return CommandOutput(
            data=results,
            warnings=warnings,
            base_url=ctx.resolve_base_url(),
            progress={"windows": windows, "total": len(endpoints)},
        )

    run_command(ctx, command="batch", fn=fn)
