"""
blobauth Command-Line Interface

Upload files to Azure Blob Storage, mint read-only SAS URLs and print
SharedKey strings-to-sign for debugging authentication failures.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import httpx
from pydantic import ValidationError

from blobauth import __version__
from blobauth.auth.canonicalizer import CanonicalRequestView
from blobauth.auth.sharedkey import build_string_to_sign
from blobauth.core.config import BlobAuthConfig, ConfigManager, describe_validation_error
from blobauth.core.logging_config import setup_logging
from blobauth.exceptions import BlobAuthError, RequestRejectedError
from blobauth.storage.uploader import BlobUploader, client_from_config


@click.group()
@click.version_option(version=__version__, prog_name="blobauth")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (YAML or JSON)",
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level (overrides configuration)",
)
@click.pass_context
def cli(ctx, config: Optional[Path], log_level: Optional[str]):
    """
    blobauth - SharedKey signing and SAS URLs for Azure Blob Storage
    """
    ctx.ensure_object(dict)
    ctx.obj["config_file"] = str(config) if config else None
    ctx.obj["log_level"] = log_level.upper() if log_level else None


def load_config(ctx: click.Context, storage_overrides: Dict[str, Any]) -> BlobAuthConfig:
    """Load configuration for a command and set up logging from it."""
    overrides: Dict[str, Any] = {}
    storage = {k: v for k, v in storage_overrides.items() if v is not None}
    if storage:
        overrides["storage"] = storage
    if ctx.obj.get("log_level"):
        overrides["logging"] = {"level": ctx.obj["log_level"]}

    try:
        config = ConfigManager().load(ctx.obj.get("config_file"), cli_overrides=overrides)
    except ValidationError as e:
        click.echo(f"[ERROR] Invalid configuration:\n{describe_validation_error(e)}", err=True)
        sys.exit(2)
    except ValueError as e:
        click.echo(f"[ERROR] Invalid configuration:\n{e}", err=True)
        sys.exit(2)

    setup_logging(
        level=config.logging.level,
        format_type=config.logging.format,
        log_file=config.logging.file,
        rotation_size=config.logging.rotation_size,
        rotation_count=config.logging.rotation_count,
        module_levels=config.logging.module_levels,
    )
    return config


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--container", help="Container to upload to (overrides configuration)")
@click.option(
    "--days",
    type=click.IntRange(min=0),
    help="SAS validity in days; 0 prints the plain blob URL",
)
@click.option("--timeout", type=float, help="Deadline in seconds for the upload")
@click.pass_context
def upload(ctx, path: Path, container: Optional[str], days: Optional[int], timeout: Optional[float]):
    """
    Upload a file under a random blob name and print its URL.

    Examples:
        blobauth -c blobauth.yaml upload chart.png
        blobauth -c blobauth.yaml upload chart.png --days 7
    """
    config = load_config(
        ctx, {"container_name": container, "sas_token_expiration_days": days}
    )

    async def run() -> str:
        async with BlobUploader(config.storage) as uploader:
            return await uploader.upload(path, timeout=timeout)

    try:
        url = asyncio.run(run())
    except RequestRejectedError as e:
        code = e.fault.error_code or "-"
        click.echo(f"[ERROR] Upload rejected ({code}): {e}", err=True)
        sys.exit(1)
    except BlobAuthError as e:
        click.echo(f"[ERROR] Upload failed: {e}", err=True)
        sys.exit(1)

    click.echo(url)


@cli.command("sas-url")
@click.argument("container")
@click.argument("blob_name")
@click.option(
    "--days",
    type=click.IntRange(min=1),
    help="SAS validity in days (default: sas_token_expiration_days from configuration)",
)
@click.pass_context
def sas_url(ctx, container: str, blob_name: str, days: Optional[int]):
    """
    Print a read-only SAS URL for an existing blob.

    Examples:
        blobauth -c blobauth.yaml sas-url images chart.png --days 7
    """
    config = load_config(ctx, {"container_name": container})
    days = days if days is not None else config.storage.sas_token_expiration_days

    async def run() -> str:
        async with client_from_config(config.storage) as client:
            return client.get_blob_sas_url(container, blob_name, days)

    try:
        url = asyncio.run(run())
    except BlobAuthError as e:
        click.echo(f"[ERROR] {e}", err=True)
        sys.exit(1)

    click.echo(url)


@cli.command("string-to-sign")
@click.argument("method")
@click.argument("url")
@click.option("--account", required=True, help="Storage account name")
@click.option(
    "--header",
    "-H",
    "headers",
    multiple=True,
    help="Request header as 'Name: value' (repeatable)",
)
def string_to_sign(method: str, url: str, account: str, headers: tuple):
    """
    Print the SharedKey string-to-sign for a request.

    Compare the output with the string the service reports in an
    AuthenticationFailed error to find which field differs.

    Examples:
        blobauth string-to-sign PUT https://acct.blob.core.windows.net/c/b.png \\
            --account acct -H "x-ms-version: 2017-04-17" -H "Content-Length: 12"
    """
    header_list = []
    for header in headers:
        if ":" not in header:
            raise click.BadParameter(f"expected 'Name: value', got {header!r}", param_hint="--header")
        name, value = header.split(":", 1)
        header_list.append((name.strip(), value.strip()))

    request = httpx.Request(method, url, headers=header_list)
    view = CanonicalRequestView.from_request(request)
    click.echo(build_string_to_sign(view, account))


if __name__ == "__main__":
    cli()
