"""Tests for the webpanel CLI."""
from __future__ import annotations

import gzip
import json
import os
import shutil
from datetime import datetime, timedelta
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from webpanel import __version__
from webpanel.cli import app

runner = CliRunner()

requires_tar = pytest.mark.skipif(shutil.which("tar") is None, reason="tar binary not available")


def _prepare_environment(
    tmp_path: Path,
    *,
    config_overrides: dict[str, object] | None = None,
    caddy_script: str = "#!/bin/sh\nexit 0\n",
    dump_script: str = "#!/bin/sh\necho \"-- dump of $4\"\n",
) -> tuple[dict[str, str], Path]:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(parents=True, exist_ok=True)

    def _write_stub(name: str, content: str) -> Path:
        path = bin_dir / name
        path.write_text(content, encoding="utf-8")
        path.chmod(0o755)
        return path

    caddy_bin = _write_stub("caddy", caddy_script)
    dump_bin = _write_stub("mysqldump", dump_script)

    config: dict[str, object] = {
        "web_root": str(tmp_path / "sites"),
        "config_dir": str(tmp_path / "config"),
        "logs_dir": str(tmp_path / "logs"),
        "templates_dir": str(tmp_path / "templates"),
        "backups": {"root": str(tmp_path / "backup")},
        "caddy": {
            "caddy_bin": str(caddy_bin),
            "caddyfile": str(tmp_path / "Caddyfile"),
            "log_root": str(tmp_path / "log" / "caddy"),
        },
        "schedule": {
            "cron_dir": str(tmp_path / "cron.d"),
            "command": "/usr/local/bin/webpanel",
        },
        "database": {"dump_bin": str(dump_bin)},
    }
    for key, value in (config_overrides or {}).items():
        existing = config.get(key)
        if isinstance(existing, dict) and isinstance(value, dict):
            existing.update(value)
        else:
            config[key] = value

    config_path = tmp_path / "config.yml"
    config_path.write_text(yaml.safe_dump(config), encoding="utf-8")
    env = {
        "WEBPANEL_CONFIG_FILE": str(config_path),
        "PATH": f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}",
    }
    return env, tmp_path


def _site_document(root: Path, domain: str = "example.com") -> Path:
    return root / "config" / "sites" / f"{domain}.conf"


def _add_site(env: dict[str, str], domain: str = "example.com", *extra: str) -> None:
    result = runner.invoke(app, ["site", "add", domain, *extra], env=env)
    assert result.exit_code == 0, result.stdout


def test_version_flag(tmp_path: Path) -> None:
    """`--version` prints the package version."""
    env, _ = _prepare_environment(tmp_path)
    result = runner.invoke(app, ["--version"], env=env)

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_invocation_without_subcommand_shows_help(tmp_path: Path) -> None:
    """Calling the CLI without a subcommand shows help output."""
    env, _ = _prepare_environment(tmp_path)
    result = runner.invoke(app, env=env)

    assert result.exit_code == 0
    assert "Web hosting control panel CLI" in result.stdout


def test_invalid_config_exits_with_validation_code(tmp_path: Path) -> None:
    """Configuration errors are reported before any command runs."""
    env, _ = _prepare_environment(tmp_path, config_overrides={"bogus": True})

    result = runner.invoke(app, ["config", "show"], env=env)

    assert result.exit_code == 2
    assert "Unknown configuration keys" in result.stdout


def test_config_show_json(tmp_path: Path) -> None:
    """`config show --json` emits the resolved configuration."""
    env, root = _prepare_environment(tmp_path)

    result = runner.invoke(app, ["config", "show", "--json"], env=env)

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["web_root"] == str(root / "sites")
    assert payload["caddy"]["reload"] is True


def test_config_show_table(tmp_path: Path) -> None:
    """`config show` prints the merged configuration in a table."""
    env, _ = _prepare_environment(tmp_path)

    result = runner.invoke(app, ["config", "show"], env=env)

    assert result.exit_code == 0
    assert "web_root" in result.stdout
    assert "templates_dir" in result.stdout


def test_site_add_provisions_site_with_default_modules(tmp_path: Path) -> None:
    """`site add` creates files and imports the default modules."""
    env, root = _prepare_environment(tmp_path)

    result = runner.invoke(app, ["site", "add", "Example.com"], env=env)

    assert result.exit_code == 0, result.stdout
    assert "created" in result.stdout
    public = root / "sites" / "example.com" / "public"
    assert (public / "index.html").exists()
    assert (root / "log" / "caddy" / "example.com").is_dir()
    contents = _site_document(root).read_text(encoding="utf-8")
    assert contents == (
        "example.com {\n"
        f"    root * {public}\n"
        "    import access_log example.com\n"
        "    import error_log example.com\n"
        "    import header\n"
        "    import security\n"
        "    import php\n"
        "}\n"
    )


def test_site_add_without_default_modules(tmp_path: Path) -> None:
    """`--no-default-modules` leaves the document bare."""
    env, root = _prepare_environment(tmp_path)

    _add_site(env, "example.com", "--no-default-modules")

    assert "import" not in _site_document(root).read_text(encoding="utf-8")


def test_site_add_existing_site_fails(tmp_path: Path) -> None:
    """A second `site add` for the same domain is rejected."""
    env, _ = _prepare_environment(tmp_path)
    _add_site(env)

    result = runner.invoke(app, ["site", "add", "example.com"], env=env)

    assert result.exit_code == 2
    assert "already exists" in result.stdout


def test_site_add_rejects_invalid_domain(tmp_path: Path) -> None:
    """Domains are validated before anything is written."""
    env, root = _prepare_environment(tmp_path)

    result = runner.invoke(app, ["site", "add", "bad_domain!"], env=env)

    assert result.exit_code == 2
    assert not (root / "sites").exists()


def test_site_add_validation_failure_exits_provider_code(tmp_path: Path) -> None:
    """A configuration rejected by caddy is rolled back."""
    env, root = _prepare_environment(
        tmp_path,
        caddy_script="#!/bin/sh\necho 'Error: adapting config' >&2\nexit 1\n",
    )

    result = runner.invoke(app, ["site", "add", "example.com"], env=env)

    assert result.exit_code == 4
    assert "caddy validation failed" in result.stdout
    assert not _site_document(root).exists()


def test_site_list_json(tmp_path: Path) -> None:
    """`site list --json` reports domains and modules."""
    env, _ = _prepare_environment(tmp_path)
    _add_site(env, "b.example")
    _add_site(env, "a.example", "--no-default-modules")

    result = runner.invoke(app, ["site", "list", "--json"], env=env)

    assert result.exit_code == 0
    sites = json.loads(result.stdout)["sites"]
    assert [site["domain"] for site in sites] == ["a.example", "b.example"]
    assert sites[0]["modules"] == []
    assert "php" in sites[1]["modules"]


def test_site_rm_requires_confirmation(tmp_path: Path) -> None:
    """Declining the prompt leaves the site in place."""
    env, root = _prepare_environment(tmp_path)
    _add_site(env)

    result = runner.invoke(app, ["site", "rm", "example.com"], input="n\n", env=env)

    assert result.exit_code == 0
    assert "Aborted" in result.stdout
    assert _site_document(root).exists()


def test_site_rm_removes_site_and_schedules(tmp_path: Path) -> None:
    """`site rm --yes` deletes files, logs, document and cron entries."""
    env, root = _prepare_environment(tmp_path)
    _add_site(env)
    enable = runner.invoke(app, ["backup", "enable", "daily", "example.com"], env=env)
    assert enable.exit_code == 0, enable.stdout

    result = runner.invoke(app, ["site", "rm", "example.com", "--yes"], env=env)

    assert result.exit_code == 0, result.stdout
    assert not (root / "sites" / "example.com").exists()
    assert not (root / "log" / "caddy" / "example.com").exists()
    assert not _site_document(root).exists()
    assert list((root / "cron.d").iterdir()) == []


def test_site_rm_unknown_site(tmp_path: Path) -> None:
    """Removing an unknown site fails with the validation code."""
    env, _ = _prepare_environment(tmp_path)

    result = runner.invoke(app, ["site", "rm", "ghost.example", "--yes"], env=env)

    assert result.exit_code == 2
    assert "not found" in result.stdout


def test_module_add_and_rm_round_trip(tmp_path: Path) -> None:
    """Enabling then disabling a module restores the document."""
    env, root = _prepare_environment(tmp_path)
    _add_site(env)
    document = _site_document(root)
    original = document.read_bytes()

    added = runner.invoke(app, ["module", "add", "example.com", "spa"], env=env)
    assert added.exit_code == 0, added.stdout
    assert "    import spa\n}" in document.read_text(encoding="utf-8")

    removed = runner.invoke(app, ["module", "rm", "example.com", "spa"], env=env)
    assert removed.exit_code == 0, removed.stdout
    assert document.read_bytes() == original


def test_module_changes_rejected_by_caddy_are_restored(tmp_path: Path) -> None:
    """A module change caddy refuses leaves the document as it was."""
    env, root = _prepare_environment(tmp_path)
    _add_site(env, "example.com", "--no-default-modules")
    assert runner.invoke(app, ["module", "add", "example.com", "php"], env=env).exit_code == 0
    document = _site_document(root)
    original = document.read_bytes()

    caddy = root / "bin" / "caddy"
    caddy.write_text("#!/bin/sh\necho 'Error: adapting config' >&2\nexit 1\n", encoding="utf-8")

    added = runner.invoke(app, ["module", "add", "example.com", "spa"], env=env)
    assert added.exit_code == 4
    assert document.read_bytes() == original

    removed = runner.invoke(app, ["module", "rm", "example.com", "php"], env=env)
    assert removed.exit_code == 4
    assert document.read_bytes() == original

    caddy.write_text("#!/bin/sh\nexit 0\n", encoding="utf-8")
    retried = runner.invoke(app, ["module", "add", "example.com", "spa"], env=env)
    assert retried.exit_code == 0, retried.stdout
    assert "    import spa\n}" in document.read_text(encoding="utf-8")


def test_module_add_with_params(tmp_path: Path) -> None:
    """Positional params after the module name are written verbatim."""
    env, root = _prepare_environment(tmp_path)
    _add_site(env, "example.com", "--no-default-modules")

    result = runner.invoke(
        app,
        ["module", "add", "example.com", "restrict", "10.0.0.0/8", "192.168.1.0/24"],
        env=env,
    )

    assert result.exit_code == 0, result.stdout
    contents = _site_document(root).read_text(encoding="utf-8")
    assert "    import restrict 10.0.0.0/8 192.168.1.0/24\n" in contents


@pytest.mark.parametrize(
    ("args", "message"),
    [
        (["module", "add", "example.com", "php"], "already enabled"),
        (["module", "rm", "example.com", "spa"], "not enabled"),
        (["module", "add", "example.com", "nope"], "Module 'nope' not found"),
        (["module", "add", "ghost.example", "php"], "No configuration found"),
    ],
)
def test_module_errors_exit_with_validation_code(
    tmp_path: Path,
    args: list[str],
    message: str,
) -> None:
    """Precondition failures map onto exit code 2."""
    env, _ = _prepare_environment(tmp_path)
    _add_site(env)

    result = runner.invoke(app, args, env=env)

    assert result.exit_code == 2
    assert message in result.stdout


def test_module_add_to_malformed_document(tmp_path: Path) -> None:
    """A document without a closing brace exits with the environment code."""
    env, root = _prepare_environment(tmp_path)
    document = _site_document(root)
    document.parent.mkdir(parents=True)
    document.write_text("example.com {\n    root * /srv\n", encoding="utf-8")

    result = runner.invoke(app, ["module", "add", "example.com", "php"], env=env)

    assert result.exit_code == 3
    assert document.read_text(encoding="utf-8") == "example.com {\n    root * /srv\n"


def test_module_list_json(tmp_path: Path) -> None:
    """`module list --json` returns the enabled modules in file order."""
    env, _ = _prepare_environment(tmp_path)
    _add_site(env)

    result = runner.invoke(app, ["module", "list", "example.com", "--json"], env=env)

    assert result.exit_code == 0
    assert json.loads(result.stdout)["modules"] == [
        "access_log",
        "error_log",
        "header",
        "security",
        "php",
    ]


def test_module_list_available(tmp_path: Path) -> None:
    """The catalog is listed with required params."""
    env, _ = _prepare_environment(tmp_path)

    result = runner.invoke(app, ["module", "list-available", "--json"], env=env)

    assert result.exit_code == 0
    modules = {entry["name"]: entry for entry in json.loads(result.stdout)["modules"]}
    assert set(modules) == {
        "access_log",
        "error_log",
        "header",
        "php",
        "restrict",
        "security",
        "spa",
    }
    assert modules["restrict"]["required_params"] == ["allowed_ranges"]


def test_module_show_renders_snippet(tmp_path: Path) -> None:
    """`module show` prints the snippet with configured values."""
    env, _ = _prepare_environment(
        tmp_path,
        config_overrides={"caddy": {"php_fpm_socket": "unix//run/php/fpm.sock"}},
    )

    result = runner.invoke(app, ["module", "show", "php"], env=env)

    assert result.exit_code == 0
    assert "(php) {" in result.stdout
    assert "php_fastcgi unix//run/php/fpm.sock" in result.stdout


def test_module_init_installs_snippets(tmp_path: Path) -> None:
    """`module init` writes one snippet file per catalog module."""
    env, root = _prepare_environment(tmp_path)

    result = runner.invoke(app, ["module", "init"], env=env)

    assert result.exit_code == 0, result.stdout
    modules_dir = root / "config" / "modules"
    assert sorted(path.name for path in modules_dir.iterdir()) == [
        "access_log.conf",
        "error_log.conf",
        "header.conf",
        "php.conf",
        "restrict.conf",
        "security.conf",
        "spa.conf",
    ]

    again = runner.invoke(app, ["module", "init"], env=env)
    assert again.exit_code == 0
    assert "up to date" in again.stdout


@requires_tar
def test_backup_run_creates_archive(tmp_path: Path) -> None:
    """`backup run` archives the site directory."""
    env, root = _prepare_environment(tmp_path)
    _add_site(env)

    result = runner.invoke(app, ["backup", "run", "weekly", "example.com"], env=env)

    assert result.exit_code == 0, result.stdout
    archives = list((root / "backup" / "weekly" / "example.com").iterdir())
    assert len(archives) == 1
    assert archives[0].name.endswith("-full.tar.gz")


def test_backup_run_missing_site(tmp_path: Path) -> None:
    """Backing up a site without files is a validation failure."""
    env, root = _prepare_environment(tmp_path)

    result = runner.invoke(app, ["backup", "run", "daily", "ghost.example"], env=env)

    assert result.exit_code == 2
    assert "does not exist" in result.stdout
    assert not (root / "backup").exists()


def test_backup_run_rejects_unknown_cadence(tmp_path: Path) -> None:
    """Only daily and weekly are accepted."""
    env, _ = _prepare_environment(tmp_path)

    result = runner.invoke(app, ["backup", "run", "hourly", "example.com"], env=env)

    assert result.exit_code == 2


def test_backup_enable_disable_cycle(tmp_path: Path) -> None:
    """Schedules can be enabled once and disabled idempotently."""
    env, root = _prepare_environment(tmp_path)
    _add_site(env)
    cron_file = root / "cron.d" / "webpanel-backup-daily-example_com"

    enabled = runner.invoke(app, ["backup", "enable", "daily", "example.com"], env=env)
    assert enabled.exit_code == 0, enabled.stdout
    assert cron_file.read_text(encoding="utf-8").splitlines()[-1] == (
        "0 1 * * * root /usr/local/bin/webpanel backup run daily example.com"
    )

    again = runner.invoke(app, ["backup", "enable", "daily", "example.com"], env=env)
    assert again.exit_code == 2
    assert "already enabled" in again.stdout

    disabled = runner.invoke(app, ["backup", "disable", "daily", "example.com"], env=env)
    assert disabled.exit_code == 0
    assert not cron_file.exists()

    disabled_again = runner.invoke(app, ["backup", "disable", "daily", "example.com"], env=env)
    assert disabled_again.exit_code == 0
    assert "was not enabled" in disabled_again.stdout


def test_backup_enable_unknown_site(tmp_path: Path) -> None:
    """Schedules are only created for existing sites."""
    env, root = _prepare_environment(tmp_path)

    result = runner.invoke(app, ["backup", "enable", "weekly", "ghost.example"], env=env)

    assert result.exit_code == 2
    assert not (root / "cron.d").exists()


def test_backup_list_and_prune(tmp_path: Path) -> None:
    """Stored archives are listed and stale ones pruned."""
    env, root = _prepare_environment(tmp_path)
    directory = root / "backup" / "daily" / "example.com"
    directory.mkdir(parents=True)
    today = datetime.now().astimezone()
    fresh = directory / f"{today:%Y-%m-%d}.tar.gz"
    fresh.write_bytes(b"fresh")
    old_day = today - timedelta(days=10)
    stale = directory / f"{old_day:%Y-%m-%d}.tar.gz"
    stale.write_bytes(b"stale")
    stamp = old_day.timestamp()
    os.utime(stale, (stamp, stamp))

    listed = runner.invoke(app, ["backup", "list", "daily", "example.com", "--json"], env=env)
    assert listed.exit_code == 0
    payload = json.loads(listed.stdout)
    assert payload["scheduled"] is False
    assert [Path(entry["path"]).name for entry in payload["backups"]] == [
        stale.name,
        fresh.name,
    ]

    pruned = runner.invoke(app, ["backup", "prune", "daily", "example.com"], env=env)
    assert pruned.exit_code == 0, pruned.stdout
    assert "Removed 1" in pruned.stdout
    assert fresh.exists()
    assert not stale.exists()


def test_dbbackup_run_writes_gzipped_dump(tmp_path: Path) -> None:
    """`dbbackup run` streams the dump through gzip."""
    env, root = _prepare_environment(tmp_path)

    result = runner.invoke(app, ["dbbackup", "run", "daily", "shop"], env=env)

    assert result.exit_code == 0, result.stdout
    dumps = list((root / "backup" / "daily" / "shop").iterdir())
    assert len(dumps) == 1
    assert dumps[0].name.endswith(".sql.gz")
    assert not dumps[0].name.endswith("-full.sql.gz")
    with gzip.open(dumps[0], "rt", encoding="utf-8") as handle:
        assert handle.read() == "-- dump of shop\n"


def test_dbbackup_run_failure_exits_provider_code(tmp_path: Path) -> None:
    """A failing dump exits 4 and leaves no archive behind."""
    env, root = _prepare_environment(
        tmp_path,
        dump_script="#!/bin/sh\necho \"Unknown database '$4'\" >&2\nexit 2\n",
    )

    result = runner.invoke(app, ["dbbackup", "run", "weekly", "ghost"], env=env)

    assert result.exit_code == 4
    assert list((root / "backup" / "weekly" / "ghost").iterdir()) == []
    lines = (root / "logs" / "operations.jsonl").read_text(encoding="utf-8").splitlines()
    record = json.loads(lines[-1])
    assert record["command"] == "dbbackup run"
    assert "Unknown database 'ghost'" in record["result"]["message"]


def test_dbbackup_rejects_invalid_name(tmp_path: Path) -> None:
    """Database names are validated at the boundary."""
    env, _ = _prepare_environment(tmp_path)

    result = runner.invoke(app, ["dbbackup", "run", "daily", "shop;drop"], env=env)

    assert result.exit_code == 2


def test_dbbackup_schedule_is_separate_from_site_schedule(tmp_path: Path) -> None:
    """Database and site schedules for the same name do not collide."""
    env, root = _prepare_environment(tmp_path)

    result = runner.invoke(app, ["dbbackup", "enable", "weekly", "shop"], env=env)

    assert result.exit_code == 0, result.stdout
    cron_file = root / "cron.d" / "webpanel-dbbackup-weekly-shop"
    assert "dbbackup run weekly shop" in cron_file.read_text(encoding="utf-8")

    listed = runner.invoke(app, ["dbbackup", "list", "weekly", "shop", "--json"], env=env)
    assert json.loads(listed.stdout)["scheduled"] is True


def test_operations_are_logged(tmp_path: Path) -> None:
    """Each command appends a record to the operations log."""
    env, root = _prepare_environment(tmp_path)
    _add_site(env)
    runner.invoke(app, ["module", "add", "example.com", "php"], env=env)

    lines = (root / "logs" / "operations.jsonl").read_text(encoding="utf-8").splitlines()
    records = [json.loads(line) for line in lines]
    assert [record["command"] for record in records] == ["site add", "module add"]
    assert records[0]["result"]["status"] == "success"
    assert records[1]["result"]["status"] == "error"
    assert records[1]["result"]["rc"] == 2
