"""Tests for the command line interface."""

import json

import pytest
from click.testing import CliRunner

from contact_enrichment.cli import cli
from contact_enrichment.database.models import OpportunityRecord
from contact_enrichment.database.store import DatabaseManager


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'opportunities.db'}"


def _invoke(runner, database_url, *args):
    return runner.invoke(cli, ["--log-level", "WARNING", "--database-url", database_url, *args])


def test_init_db(runner, database_url, tmp_path):
    result = _invoke(runner, database_url, "init-db")

    assert result.exit_code == 0
    assert "Database initialized" in result.output
    assert (tmp_path / "opportunities.db").exists()


def test_import_json_then_coverage(runner, database_url, tmp_path):
    source = tmp_path / "opportunities.json"
    source.write_text(json.dumps({"opportunities": [
        {"id": 1, "url": "https://a.io", "domain": "a.io", "isPremium": True, "domainAuthority": 70,
         "contactInfo": json.dumps({"email": "hi@a.io"})},
        {"id": 2, "url": "https://b.io", "domain": "b.io"},
        {"url": "https://no-id.io"},
    ]}))

    imported = _invoke(runner, database_url, "import-opportunities", str(source))
    report = _invoke(runner, database_url, "coverage", "--json")

    assert imported.exit_code == 0
    assert "Imported 2 opportunities" in imported.output
    assert "skipped 1" in imported.output
    data = json.loads(report.output)
    assert data["overall"] == {"total": 2, "with_contact": 1, "percentage": 50.0}
    assert data["premium"]["percentage"] == 100.0


def test_import_csv(runner, database_url, tmp_path):
    source = tmp_path / "opportunities.csv"
    source.write_text(
        "id,url,domain,is_premium,domain_authority\n"
        "1,https://a.io,a.io,true,40\n"
        "2,https://b.io,b.io,no,\n"
    )

    result = _invoke(runner, database_url, "import-opportunities", str(source))
    coverage = _invoke(runner, database_url, "coverage")

    assert result.exit_code == 0
    assert "Imported 2 opportunities" in result.output
    assert coverage.exit_code == 0
    assert "Premium" in coverage.output


def test_import_unreadable_file(runner, database_url, tmp_path):
    source = tmp_path / "broken.json"
    source.write_text("{not json")

    result = _invoke(runner, database_url, "import-opportunities", str(source))

    assert result.exit_code == 1
    assert "Cannot read" in result.output


def test_normalize_rewrites_legacy_rows(runner, database_url):
    db = DatabaseManager(database_url)
    db.init_database()
    with db.get_session() as session:
        session.add(OpportunityRecord(
            id=1, url="https://a.io", domain="a.io", contact_info={"email": "hi@a.io", "form": "https://a.io/c"},
        ))
    db.dispose()

    result = _invoke(runner, database_url, "normalize")

    assert result.exit_code == 0
    assert "1 rewritten" in result.output
    db = DatabaseManager(database_url)
    with db.get_session() as session:
        assert session.get(OpportunityRecord, 1).contact_info["emails"] == ["hi@a.io"]
    db.dispose()


def test_run_with_nothing_to_enrich(runner, database_url):
    result = _invoke(runner, database_url, "run", "--dry-run", "--batch-size", "2")

    assert result.exit_code == 0
    assert "Processed 0" in result.output


def test_store_errors_exit_non_zero(runner, tmp_path):
    # a directory where the database file should be
    target = tmp_path / "db"
    target.mkdir()

    result = _invoke(runner, f"sqlite:///{target}", "coverage")

    assert result.exit_code == 1
    assert "Opportunity store error" in result.output
