"""YAML configuration loading and tenant seeding."""

import textwrap
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
import yaml
from sqlalchemy import select

from stock_config import get_active_config, seed_tenants
from stock_config.loader import compute_checksum, load_configuration, parse_configuration
from stock_kernel.models.catalog import Tenant

MINIMAL = {
    "database": {"url": "sqlite+pysqlite:///:memory:"},
    "tenants": [{"code": "EKO", "name": "EKOSPOL"}],
}


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "stock.yaml"
    path.write_text(textwrap.dedent(text))
    return path


@pytest.fixture
def clean_env(monkeypatch):
    monkeypatch.delenv("STOCK_CONFIG", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    return monkeypatch


class TestLoader:
    def test_packaged_default(self, clean_env):
        config = get_active_config()

        assert config.database.url == "sqlite+pysqlite:///stock.db"
        assert config.logging.level == "INFO"
        assert config.business_timezone == ZoneInfo("Europe/Prague")
        assert [t.code for t in config.tenants] == ["EKO", "ZOO"]
        assert config.tenant("ZOO").name == "ZOO Tabor"

    def test_defaults_for_optional_keys(self):
        config = parse_configuration(MINIMAL)
        assert config.timezone == "UTC"
        assert config.logging.level == "INFO"
        assert config.database.echo is False
        assert config.tenants[0].is_active is True

    def test_load_from_file(self, tmp_path):
        path = _write(
            tmp_path,
            """
            database:
              url: postgresql+psycopg2://stock@localhost/stock
              pool_size: 5
            logging:
              level: debug
            timezone: UTC
            tenants:
              - code: ACME
                name: Acme
                is_active: false
            """,
        )
        config = load_configuration(path)

        assert config.database.pool_size == 5
        assert config.logging.level == "DEBUG"
        assert config.tenants[0].is_active is False

    @pytest.mark.parametrize(
        "document, key",
        [
            ({"tenants": MINIMAL["tenants"]}, "database"),
            ({"database": {}, "tenants": MINIMAL["tenants"]}, "database.url"),
            ({"database": MINIMAL["database"]}, "tenants"),
            ({"database": MINIMAL["database"], "tenants": [{"code": "X"}]}, "tenants[0].name"),
        ],
    )
    def test_missing_required_key(self, document, key):
        with pytest.raises(ValueError, match=key.replace("[", r"\[").replace("]", r"\]")):
            parse_configuration(document)

    def test_duplicate_tenant_codes(self):
        document = dict(MINIMAL, tenants=[{"code": "A", "name": "a"}, {"code": "A", "name": "b"}])
        with pytest.raises(ValueError, match="Duplicate tenant codes: A"):
            parse_configuration(document)

    def test_unknown_timezone(self):
        with pytest.raises(ValueError, match="Unknown timezone"):
            parse_configuration(dict(MINIMAL, timezone="Mars/Olympus"))

    def test_unknown_tenant_code(self):
        with pytest.raises(KeyError):
            parse_configuration(MINIMAL).tenant("NOPE")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_configuration(tmp_path / "absent.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = _write(tmp_path, "database: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_configuration(path)

    def test_checksum_is_deterministic(self):
        reordered = {"tenants": MINIMAL["tenants"], "database": MINIMAL["database"]}
        assert compute_checksum(MINIMAL) == compute_checksum(reordered)
        assert parse_configuration(MINIMAL).checksum == compute_checksum(MINIMAL)


class TestEnvironmentOverrides:
    def test_config_path_from_environment(self, clean_env, tmp_path):
        path = _write(
            tmp_path,
            """
            database:
              url: sqlite+pysqlite:///other.db
            tenants:
              - code: ONE
                name: One
            """,
        )
        clean_env.setenv("STOCK_CONFIG", str(path))

        config = get_active_config()

        assert [t.code for t in config.tenants] == ["ONE"]

    def test_explicit_path_wins_over_environment(self, clean_env, tmp_path):
        path = _write(tmp_path, yaml.safe_dump(MINIMAL))
        clean_env.setenv("STOCK_CONFIG", str(tmp_path / "ignored.yaml"))

        assert [t.code for t in get_active_config(path).tenants] == ["EKO"]

    def test_database_url_override(self, clean_env):
        clean_env.setenv("DATABASE_URL", "postgresql+psycopg2://u:p@db/stock")

        config = get_active_config()

        assert config.database.url == "postgresql+psycopg2://u:p@db/stock"
        assert config.database.echo is False

    def test_config_trace_logged(self, clean_env, captured_logs):
        config = get_active_config()

        [trace] = [r for r in captured_logs() if r["message"] == "STOCK_CONFIG_TRACE"]
        assert trace["checksum"] == config.checksum
        assert trace["tenant_count"] == 2


class TestSeedTenants:
    def test_seed_is_idempotent(self, session, clean_env):
        config = get_active_config()

        created = seed_tenants(session, config)
        again = seed_tenants(session, config)

        assert sorted(t.code for t in created) == ["EKO", "ZOO"]
        assert again == []
        codes = session.execute(select(Tenant.code).order_by(Tenant.code)).scalars().all()
        assert codes == ["EKO", "ZOO"]

    def test_existing_tenant_left_alone(self, session, create_tenant, clean_env):
        create_tenant("EKO", "Renamed locally")

        created = seed_tenants(session, get_active_config())

        assert [t.code for t in created] == ["ZOO"]
        name = session.execute(select(Tenant.name).where(Tenant.code == "EKO")).scalar_one()
        assert name == "Renamed locally"
