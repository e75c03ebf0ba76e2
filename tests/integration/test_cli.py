"""
Integration tests for the CLI.

Tests invoke the Typer app against a temporary configuration file and
database.
"""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from fileperm import __version__
from fileperm.cli import app
from fileperm.store import FilePermDB

runner = CliRunner()

NS_FILE = 6


@pytest.fixture
def config_file(temp_dir: Path, sample_config_yaml: str) -> Path:
    path = temp_dir / "fileperm.yaml"
    path.write_text(sample_config_yaml)
    return path


@pytest.fixture
def db_file(temp_dir: Path) -> Path:
    return temp_dir / "fileperm.db"


@pytest.fixture
def paths(config_file: Path, db_file: Path) -> list[str]:
    return ["--config", str(config_file), "--db", str(db_file)]


def seed_resource(db_file: Path, key: str, level: str | None = None) -> int:
    """Register a resource directly in the database."""
    with FilePermDB(db_file) as db:
        resource_id = db.create_resource(NS_FILE, key)
        if level is not None:
            db.upsert_level(resource_id, level)
    return resource_id


# =============================================================================
# General
# =============================================================================


class TestVersion:
    """Tests for --version."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


# =============================================================================
# validate-config
# =============================================================================


class TestValidateConfig:
    """Tests for `fileperm validate-config`."""

    def test_valid(self, config_file: Path) -> None:
        """A valid file exits 0."""
        result = runner.invoke(app, ["validate-config", str(config_file)])
        assert result.exit_code == 0
        assert "Configuration is valid" in result.stdout

    def test_invalid(self, temp_dir: Path, invalid_config_yaml: str) -> None:
        """Structural errors exit 1 and say access is denied."""
        path = temp_dir / "bad.yaml"
        path.write_text(invalid_config_yaml)

        result = runner.invoke(app, ["validate-config", str(path)])

        assert result.exit_code == 1
        assert "all access will be denied" in result.stdout
        assert "secret" in result.stdout

    def test_unusable_default(self, temp_dir: Path) -> None:
        """A bad default exits 1 without failing closed."""
        path = temp_dir / "defaults.yaml"
        path.write_text("levels: [public]\ndefault_level: secret\n")

        result = runner.invoke(app, ["validate-config", str(path), "--json"])

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["valid"] is False
        assert data["fail_closed"] is False
        assert data["errors"] == ["default_level references unknown level 'secret'"]

    def test_json_valid(self, config_file: Path) -> None:
        result = runner.invoke(app, ["validate-config", str(config_file), "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"valid": True, "fail_closed": False, "errors": []}

    def test_missing_file(self, temp_dir: Path) -> None:
        """A missing file is a usage error."""
        result = runner.invoke(app, ["validate-config", str(temp_dir / "nope.yaml")])
        assert result.exit_code != 0


# =============================================================================
# levels
# =============================================================================


class TestLevels:
    """Tests for `fileperm levels`."""

    def test_lists_levels(self, config_file: Path) -> None:
        result = runner.invoke(app, ["levels", "--config", str(config_file)])
        assert result.exit_code == 0
        for level in ("public", "internal", "confidential"):
            assert level in result.stdout
        assert "sysop" in result.stdout

    def test_missing_config(self, temp_dir: Path) -> None:
        result = runner.invoke(app, ["levels", "--config", str(temp_dir / "nope.yaml")])
        assert result.exit_code == 1
        assert "Configuration not found" in result.stdout


# =============================================================================
# Level management
# =============================================================================


class TestAddResource:
    """Tests for `fileperm add-resource`."""

    def test_explicit_level(self, paths: list[str], db_file: Path) -> None:
        """The chosen level is assigned after the resource is committed."""
        result = runner.invoke(app, ["add-resource", "2", "Notes", "--level", "confidential", *paths])
        assert result.exit_code == 0
        assert "Registered resource 1" in result.stdout
        assert "confidential" in result.stdout

        with FilePermDB(db_file) as db:
            assert db.fetch_level(1) == "confidential"

    def test_namespace_default(self, paths: list[str], db_file: Path) -> None:
        """Without --level the namespace default applies."""
        result = runner.invoke(app, ["add-resource", str(NS_FILE), "Report.pdf", *paths])
        assert result.exit_code == 0
        with FilePermDB(db_file) as db:
            assert db.fetch_level(1) == "public"

    def test_invalid_level(self, paths: list[str], db_file: Path) -> None:
        """An unconfigured level is rejected before anything is written."""
        result = runner.invoke(app, ["add-resource", "2", "Notes", "--level", "secret", *paths])
        assert result.exit_code == 1
        assert "Invalid permission level" in result.stdout
        with FilePermDB(db_file) as db:
            assert db.find_resource(2, "Notes") is None


class TestGetSetRemove:
    """Tests for get-level, set-level and remove-level."""

    def test_set_then_get(self, paths: list[str], db_file: Path) -> None:
        resource_id = seed_resource(db_file, "Report.pdf", "public")

        result = runner.invoke(app, ["set-level", str(resource_id), "internal", *paths])
        assert result.exit_code == 0
        assert "public → internal" in result.stdout

        result = runner.invoke(app, ["get-level", str(resource_id), *paths])
        assert result.exit_code == 0
        assert "internal" in result.stdout

    def test_set_invalid_level(self, paths: list[str], db_file: Path) -> None:
        resource_id = seed_resource(db_file, "Report.pdf")
        result = runner.invoke(app, ["set-level", str(resource_id), "secret", *paths])
        assert result.exit_code == 1
        assert "Invalid permission level" in result.stdout

    def test_set_missing_resource(self, paths: list[str]) -> None:
        result = runner.invoke(app, ["set-level", "42", "public", *paths])
        assert result.exit_code == 1
        assert "does not exist" in result.stdout

    def test_remove(self, paths: list[str], db_file: Path) -> None:
        resource_id = seed_resource(db_file, "Report.pdf", "internal")

        result = runner.invoke(app, ["remove-level", str(resource_id), *paths])
        assert result.exit_code == 0

        result = runner.invoke(app, ["get-level", str(resource_id), *paths])
        assert "(none)" in result.stdout


# =============================================================================
# check-access
# =============================================================================


class TestCheckAccess:
    """Tests for `fileperm check-access`."""

    def test_allowed(self, paths: list[str], db_file: Path) -> None:
        resource_id = seed_resource(db_file, "Memo.pdf", "internal")
        result = runner.invoke(app, ["check-access", str(resource_id), "-g", "staff", *paths])
        assert result.exit_code == 0
        assert "ALLOWED" in result.stdout

    def test_denied(self, paths: list[str], db_file: Path) -> None:
        resource_id = seed_resource(db_file, "Memo.pdf", "confidential")
        result = runner.invoke(
            app,
            ["check-access", str(resource_id), "-g", "user", "-g", "staff", *paths],
        )
        assert result.exit_code == 1
        assert "DENIED (Access denied)" in result.stdout
        assert "confidential" not in result.stdout
        assert "no_grant" not in result.stdout

    def test_verbose_logs_matched_rule(self, paths: list[str], db_file: Path) -> None:
        """The matched rule is only shown as a debug log."""
        resource_id = seed_resource(db_file, "Memo.pdf", "confidential")
        result = runner.invoke(
            app,
            ["--verbose", "check-access", str(resource_id), "-g", "staff", *paths],
        )
        assert result.exit_code == 1
        assert "no_grant[confidential]" in result.output

    def test_json_surface(self, paths: list[str], db_file: Path) -> None:
        resource_id = seed_resource(db_file, "Memo.pdf", "confidential")
        result = runner.invoke(
            app,
            [
                "check-access", str(resource_id),
                "-g", "sysop",
                "--surface", "raw_download",
                "--json",
                *paths,
            ],
        )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["allowed"] is True
        assert data["surface"] == "raw_download"
        assert data["reason"] == "Access granted"
        assert "rule_matched" not in data

    def test_invalid_config_denies(self, temp_dir: Path, invalid_config_yaml: str, db_file: Path) -> None:
        path = temp_dir / "bad.yaml"
        path.write_text(invalid_config_yaml)
        resource_id = seed_resource(db_file, "Memo.pdf", "public")

        result = runner.invoke(
            app,
            ["check-access", str(resource_id), "-g", "sysop", "--config", str(path), "--db", str(db_file)],
        )
        assert result.exit_code == 1
        assert "DENIED (Access denied)" in result.stdout
        assert "invalid_config" not in result.stdout


# =============================================================================
# reconcile
# =============================================================================


class TestReconcile:
    """Tests for `fileperm reconcile`."""

    def test_clean(self, paths: list[str]) -> None:
        result = runner.invoke(app, ["reconcile", *paths])
        assert result.exit_code == 0
        assert "Valid permission levels: public, internal, confidential" in result.stdout
        assert "No orphaned permission levels found." in result.stdout

    def test_reports_orphans(self, paths: list[str], db_file: Path) -> None:
        seed_resource(db_file, "Old.pdf", "secret")
        result = runner.invoke(app, ["reconcile", *paths])
        assert result.exit_code == 0
        assert "Found 1 orphaned permission level(s):" in result.stdout
        assert "--fix" in result.stdout

    def test_fix(self, paths: list[str], db_file: Path) -> None:
        resource_id = seed_resource(db_file, "Old.pdf", "secret")
        result = runner.invoke(app, ["reconcile", "--fix", "secret:confidential", *paths])
        assert result.exit_code == 0
        assert "Updated 1 resource(s)" in result.stdout
        with FilePermDB(db_file) as db:
            assert db.fetch_level(resource_id) == "confidential"

    def test_fix_nothing_matches(self, paths: list[str], db_file: Path) -> None:
        seed_resource(db_file, "Old.pdf", "secret")
        result = runner.invoke(app, ["reconcile", "--fix", "gone:public", *paths])
        assert result.exit_code == 0
        assert "Nothing to fix" in result.stdout

    def test_fix_bad_format(self, paths: list[str], db_file: Path) -> None:
        seed_resource(db_file, "Old.pdf", "secret")
        result = runner.invoke(app, ["reconcile", "--fix", "secret", *paths])
        assert result.exit_code == 1
        assert "Invalid fix format" in result.stdout

    def test_fix_invalid_target(self, paths: list[str], db_file: Path) -> None:
        seed_resource(db_file, "Old.pdf", "secret")
        result = runner.invoke(app, ["reconcile", "--fix", "secret:nope", *paths])
        assert result.exit_code == 1
        assert "Invalid permission level" in result.stdout
