"""
Command line task running index migrations.

Examples:
    Show the planned migration without writing anything::

        intelstore-migrate --config intelstore.json --id migration-1 --prefix 2.0

    Run (or resume) it::

        intelstore-migrate --config intelstore.json --id migration-1 --prefix 2.0 --confirm

    Show its progress::

        intelstore-migrate --config intelstore.json --id migration-1 --status
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from typing import Any

import click

from intelstore.config import AppConfig, load_config
from intelstore.exceptions import IntelStoreError
from intelstore.migration.context import MigrationContext
from intelstore.migration.coordinator import MigrationCoordinator
from intelstore.migration.exceptions import MigrationError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "INTELSTORE_CONFIG"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def _load_config(_ctx, _param, value):
    try:
        return load_config(value)
    except IntelStoreError as e:
        raise click.BadParameter(str(e))


def _split_stores(_ctx, _param, value):
    if not value:
        return None
    return [key.strip() for key in value.split(",") if key.strip()]


def _with_overrides(config: AppConfig, batch_size: int | None, concurrency: int | None) -> AppConfig:
    overrides: dict[str, Any] = {}
    if batch_size is not None:
        overrides["batch_size"] = batch_size
    if concurrency is not None:
        overrides["concurrency"] = concurrency
    if not overrides:
        return config
    return dataclasses.replace(config, migration=dataclasses.replace(config.migration, **overrides))


async def _run(
    config: AppConfig,
    migration_id: str,
    prefix: str | None,
    stores: list[str] | None,
    confirm: bool,
    restart: bool,
    status: bool,
    fail_fast: bool,
) -> dict[str, Any]:
    context = MigrationContext.from_config(config)
    try:
        coordinator = MigrationCoordinator(context)
        if status:
            return (await coordinator.status(migration_id)).to_dict()
        if not confirm:
            # Dry run: nothing is persisted and no index is created
            state = await coordinator.init_migration(migration_id, prefix, stores, confirm=False)
            return state.to_document()
        await context.open()
        await coordinator.migrate(
            migration_id,
            prefix,
            stores,
            restart=restart,
            fail_fast=fail_fast,
        )
        return (await coordinator.status(migration_id)).to_dict()
    finally:
        await context.close()


@click.command("intelstore-migrate", help="Migrate entity stores to a new index generation.")
@click.option(
    "--config",
    "config",
    envvar=CONFIG_ENV_VAR,
    required=True,
    callback=_load_config,
    help="Path to the JSON configuration file.",
)
@click.option("--id", "migration_id", required=True, help="Migration run identifier.")
@click.option("--prefix", help="Version prefix of the target indices, e.g. 2.0.")
@click.option(
    "--stores",
    callback=_split_stores,
    help="Comma separated entity types to migrate (default: all configured stores).",
)
@click.option("--batch-size", type=click.IntRange(min=1), help="Documents per page.")
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    help="Entity types migrated in parallel.",
)
@click.option(
    "--confirm/--dry-run",
    default=False,
    help="Really migrate; a dry run only prints the planned state (default: --dry-run).",
)
@click.option("--restart", is_flag=True, help="Re-initialize the run, recreating target indices.")
@click.option("--status", is_flag=True, help="Print the progress of the run and exit.")
@click.option("--fail-fast", is_flag=True, help="Stop all entity types on the first failure.")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    help="Logging level (default: INFO).",
)
def main(
    config: AppConfig,
    migration_id: str,
    prefix: str | None,
    stores: list[str] | None,
    batch_size: int | None,
    concurrency: int | None,
    confirm: bool,
    restart: bool,
    status: bool,
    fail_fast: bool,
    log_level: str,
):
    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)
    if not status and not prefix:
        raise click.UsageError("--prefix is required unless --status is given")

    config = _with_overrides(config, batch_size, concurrency)
    try:
        result = asyncio.run(
            _run(config, migration_id, prefix, stores, confirm, restart, status, fail_fast)
        )
    except MigrationError as e:
        click.echo(json.dumps(e.to_dict(), indent=2, default=str), err=True)
        raise SystemExit(1)
    except IntelStoreError as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps(result, indent=2, default=str))


if __name__ == "__main__":
    main()
