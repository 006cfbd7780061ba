from __future__ import annotations

from pathlib import Path
from typing import Literal

import camphub

from .click_compat import RichGroup, click
from .context import CLIContext
from .logging import configure_logging, restore_logging


@click.group(
    name="camphub",
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
    cls=RichGroup,
)
@click.option("--base-url", type=str, default=None, help="API base URL (or CAMPHUB_BASE_URL).")
@click.option("--token", type=str, default=None, help="Bearer token (or CAMPHUB_TOKEN).")
@click.option("--timeout", type=float, default=None, help="Per-attempt timeout in seconds.")
@click.option("--retry", type=int, default=None, help="Retries after the first attempt.")
@click.option("--retry-delay", type=float, default=None, help="Base backoff delay in seconds.")
@click.option(
    "--output",
    type=click.Choice(["table", "json"]),
    default="table",
)
@click.option("--json", "json_flag", is_flag=True, help="Alias for --output json.")
@click.option("-q", "--quiet", is_flag=True, help="Suppress non-essential stderr output.")
@click.option("-v", "verbose", count=True, help="Increase verbosity (-v, -vv).")
@click.option(
    "--progress/--no-progress",
    default=None,
    help="Force enable/disable progress bars (stderr).",
)
@click.option(
    "--trace",
    is_flag=True,
    help="Log every request and response to stderr (token redacted).",
)
@click.option("--dotenv/--no-dotenv", default=False, help="Opt-in .env loading.")
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False),
    default=".env",
)
@click.option("--log-file", type=click.Path(dir_okay=False), default=None)
@click.version_option(version=camphub.__version__, prog_name="camphub")
@click.pass_context
def cli(
    click_ctx: click.Context,
    *,
    base_url: str | None,
    token: str | None,
    timeout: float | None,
    retry: int | None,
    retry_delay: float | None,
    output: str,
    json_flag: bool,
    quiet: bool,
    verbose: int,
    progress: bool | None,
    trace: bool,
    dotenv: bool,
    env_file: str,
    log_file: str | None,
) -> None:
    if click_ctx.invoked_subcommand is None:
        # No args: show help; no network calls.
        click.echo(click_ctx.get_help())
        raise click.exceptions.Exit(0)

    out = "json" if json_flag else output
    progress_mode: Literal["auto", "always", "never"] = "auto"
    if progress is True:
        progress_mode = "always"
    if progress is False:
        progress_mode = "never"
    if trace and progress is None:
        progress_mode = "never"

    click_ctx.obj = CLIContext(
        output=out,  # type: ignore[arg-type]
        quiet=quiet,
        verbosity=verbose,
        progress=progress_mode,
        dotenv=dotenv,
        env_file=Path(env_file),
        base_url=base_url,
        token=token,
        timeout=timeout,
        retry=retry,
        retry_delay=retry_delay,
        trace=trace,
    )

    previous_logging = configure_logging(
        verbosity=verbose,
        log_file=Path(log_file) if log_file else None,
        trace=trace,
    )
    click_ctx.call_on_close(lambda: restore_logging(previous_logging))


# Register commands
from .commands.batch_cmd import batch_cmd as _batch_cmd  # noqa: E402
from .commands.request_cmd import request_cmd as _request_cmd  # noqa: E402
from .commands.upload_cmd import upload_cmd as _upload_cmd  # noqa: E402
from .commands.version_cmd import version_cmd as _version_cmd  # noqa: E402

cli.add_command(_version_cmd)
cli.add_command(_request_cmd)
cli.add_command(_batch_cmd)
cli.add_command(_upload_cmd)
