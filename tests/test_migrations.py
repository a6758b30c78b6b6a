import pytest

from core.config import DatabaseSettings, MigrationSettings, Settings
from domain.common.exceptions import MigrationError
from infrastructure import migrations


pytestmark = pytest.mark.asyncio


def make_settings(**overrides) -> Settings:
    return Settings(database=DatabaseSettings(password="p%w"), **overrides)


async def test_alembic_config_keeps_url_intact():
    settings = make_settings()
    cfg = migrations.build_alembic_config(settings)
    assert cfg.get_main_option("sqlalchemy.url") == settings.database.url
    assert cfg.get_main_option("script_location") == settings.migrations.script_location
    assert cfg.attributes["configure_logger"] is False


async def test_upgrade_runs_to_head(monkeypatch):
    calls = []
    monkeypatch.setattr(migrations.command, "upgrade", lambda cfg, revision: calls.append(revision))

    await migrations.run_migrations(make_settings())
    assert calls == ["head"]


async def test_upgrade_failure_raises_migration_error(monkeypatch):
    def broken(cfg, revision):
        raise RuntimeError('syntax error at or near "TABEL"')

    monkeypatch.setattr(migrations.command, "upgrade", broken)

    with pytest.raises(MigrationError) as ei:
        await migrations.run_migrations(make_settings())
    assert "TABEL" in ei.value.message


async def test_disabled_migrations_are_skipped(monkeypatch):
    def fail(cfg, revision):
        raise AssertionError("upgrade must not run")

    monkeypatch.setattr(migrations.command, "upgrade", fail)
    await migrations.run_migrations(make_settings(migrations=MigrationSettings(enabled=False)))
