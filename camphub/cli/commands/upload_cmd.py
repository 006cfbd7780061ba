from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from camphub.uploads import upload_file

from ..click_compat import RichCommand, click
from ..context import CLIContext
from ..logging import set_redaction_token
from ..options import output_options, parse_pairs
from ..progress import ProgressManager, ProgressSettings
from ..runner import CommandOutput, run_command


@click.command(name="upload", cls=RichCommand)
@click.argument("url", type=str)
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--field-name", default="file", show_default=True, help="Form field for the file.")
@click.option("-f", "--field", "fields", multiple=True, help="Extra form field key=value.")
@click.option("--timeout", type=float, default=None, help="Upload timeout in seconds.")
@output_options
@click.pass_obj
def upload_cmd(
    ctx: CLIContext,
    url: str,
    file: Path,
    field_name: str,
    fields: tuple[str, ...],
    timeout: float | None,
) -> None:
    """Upload FILE to URL as multipart/form-data."""

    def fn(ctx: CLIContext, warnings: list[str]) -> CommandOutput:
        ctx.load_dotenv_if_requested()
        additional = dict(parse_pairs(fields, option="--field"))
        token = ctx.resolve_token()
        set_redaction_token(token)
        headers = {"Authorization": f"Bearer {token}"} if token else None
        reported: list[float] = []

        async def _run() -> Any:
            settings = ProgressSettings(mode=ctx.progress, quiet=ctx.quiet)
            with ProgressManager(settings=settings) as pm:
                _, bar = pm.percent_task(description=f"Uploading {file.name}")

                def on_progress(percent: float) -> None:
                    reported.append(percent)
                    bar(percent)

                return await upload_file(
                    url,
                    file,
                    field_name=field_name,
                    additional_data=additional,
                    on_progress=on_progress,
                    headers=headers,
                    timeout=timeout,
                )

        body = asyncio.run(_run())
        return CommandOutput(
            data=body,
            warnings=warnings,
            progress={"percent": reported[-1] if reported else 0.0},
        )

    run_command(ctx, command="upload", fn=fn)
