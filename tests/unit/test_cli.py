"""
Unit tests for the intelstore-migrate command.

The Elasticsearch connection is replaced by the in-memory store, so each
command runs end to end against seeded indices.
"""

import asyncio
import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from intelstore.cli import main
from intelstore.config import StoreConfig
from intelstore.migration.context import MigrationContext
from intelstore.stores.in_memory import InMemoryDocumentStore
from intelstore.stores.registry import StoreRegistry


@pytest.fixture
def config_path(tmp_path: Path, store_configs: dict[str, StoreConfig]) -> Path:
    path = tmp_path / "intelstore.json"
    path.write_text(
        json.dumps(
            {
                "migration": {"batch_size": 3, "concurrency": 2},
                "stores": {
                    key: {
                        "index": config.index,
                        "settings": config.settings,
                        "mappings": config.mappings,
                        "aliases": config.aliases,
                    }
                    for key, config in store_configs.items()
                },
            }
        )
    )
    return path


@pytest.fixture
def cluster(
    monkeypatch: pytest.MonkeyPatch,
    memory_store: InMemoryDocumentStore,
    seed,
    entity_factory,
) -> InMemoryDocumentStore:
    """Seeded in-memory store served to the command instead of Elasticsearch."""

    def from_config(app_config, **kwargs):
        registry = StoreRegistry.from_configs(memory_store, app_config.stores)
        return MigrationContext(memory_store, registry, app_config.migration, enable_tracing=False)

    monkeypatch.setattr("intelstore.cli.MigrationContext.from_config", from_config)

    async def seed_all():
        await seed("indicator", [entity_factory("indicator", n) for n in range(5)])
        await seed("sighting", [entity_factory("sighting", n) for n in range(2)])
        await seed("event", [])

    asyncio.run(seed_all())
    return memory_store


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestDryRun:
    """Tests for the default dry run mode."""

    def test_prints_planned_state(
        self, runner: CliRunner, config_path: Path, cluster: InMemoryDocumentStore
    ) -> None:
        result = runner.invoke(
            main,
            ["--config", str(config_path), "--id", "migration-1", "--prefix", "2.0"],
        )

        assert result.exit_code == 0, result.output
        planned = json.loads(result.stdout)
        assert planned["id"] == "migration-1"
        assert planned["stores"]["indicator"]["source"]["total"] == 5
        assert planned["stores"]["indicator"]["target"]["index"] == "v2.0_ctia_indicator"
        assert not asyncio.run(cluster.index_exists("intelstore_migration"))
        assert not asyncio.run(cluster.index_exists("v2.0_ctia_indicator"))

    def test_stores_option(
        self, runner: CliRunner, config_path: Path, cluster: InMemoryDocumentStore
    ) -> None:
        result = runner.invoke(
            main,
            [
                "--config",
                str(config_path),
                "--id",
                "migration-1",
                "--prefix",
                "2.0",
                "--stores",
                "sighting, indicator",
            ],
        )

        assert result.exit_code == 0, result.output
        assert list(json.loads(result.stdout)["stores"]) == ["sighting", "indicator"]


class TestConfirm:
    """Tests for --confirm and --status."""

    def test_migrates_and_reports_status(
        self, runner: CliRunner, config_path: Path, cluster: InMemoryDocumentStore
    ) -> None:
        result = runner.invoke(
            main,
            [
                "--config",
                str(config_path),
                "--id",
                "migration-1",
                "--prefix",
                "2.0",
                "--confirm",
                "--batch-size",
                "2",
            ],
        )

        assert result.exit_code == 0, result.output
        status = json.loads(result.stdout)
        assert status["completed"] is True
        assert status["stores"]["indicator"]["migrated"] == 5
        assert status["stores"]["sighting"]["status"] == "completed"
        assert asyncio.run(cluster.count("v2.0_ctia_indicator")) == 5

        result = runner.invoke(
            main, ["--config", str(config_path), "--id", "migration-1", "--status"]
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["stores"]["indicator"]["progress_percent"] == 100.0

    def test_status_of_unknown_run(
        self, runner: CliRunner, config_path: Path, cluster: InMemoryDocumentStore
    ) -> None:
        result = runner.invoke(
            main, ["--config", str(config_path), "--id", "missing", "--status"]
        )

        assert result.exit_code == 1
        assert "MIGRATION_NOT_FOUND" in result.output

    def test_unknown_store(
        self, runner: CliRunner, config_path: Path, cluster: InMemoryDocumentStore
    ) -> None:
        result = runner.invoke(
            main,
            [
                "--config",
                str(config_path),
                "--id",
                "migration-1",
                "--prefix",
                "2.0",
                "--stores",
                "malware",
            ],
        )

        assert result.exit_code == 1
        assert "UNKNOWN_ENTITY_TYPE" in result.output


class TestUsage:
    """Tests for argument validation."""

    def test_prefix_required_without_status(
        self, runner: CliRunner, config_path: Path, cluster: InMemoryDocumentStore
    ) -> None:
        result = runner.invoke(main, ["--config", str(config_path), "--id", "migration-1"])

        assert result.exit_code == 2
        assert "--prefix is required" in result.output

    def test_invalid_config(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(
            main,
            ["--config", str(tmp_path / "missing.json"), "--id", "m", "--prefix", "2.0"],
        )

        assert result.exit_code == 2
        assert "cannot read configuration" in result.output

    def test_config_from_environment(
        self, runner: CliRunner, config_path: Path, cluster: InMemoryDocumentStore
    ) -> None:
        result = runner.invoke(
            main,
            ["--id", "migration-1", "--prefix", "2.0"],
            env={"INTELSTORE_CONFIG": str(config_path)},
        )

        assert result.exit_code == 0, result.output

    def test_batch_size_must_be_positive(self, runner: CliRunner, config_path: Path) -> None:
        result = runner.invoke(
            main,
            [
                "--config",
                str(config_path),
                "--id",
                "m",
                "--prefix",
                "2.0",
                "--batch-size",
                "0",
            ],
        )

        assert result.exit_code == 2
