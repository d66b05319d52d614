"""Typer-powered command line interface for ``webpanel``.

Commands are thin: they validate names, build the runtime objects from the
loaded configuration and hand off to the composition and backup engines.
Every command runs inside a structured-log operation; failures raised by the
engines are printed in red and mapped onto their exit code.
"""
from __future__ import annotations

import json
import re
import subprocess
import textwrap
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .archive import DatabaseDumpProducer, TarArchiveProducer
from .backups import BackupArchiver, Cadence
from .config import AppConfig, ConfigError, load_config
from .errors import WebpanelError
from .logging import OperationScope, StructuredLogger
from .modules import (
    DocumentIOError,
    ModuleComposer,
    ModuleDefinition,
    ModuleRegistry,
    SiteDocument,
)
from .providers import CaddyError, CaddyProvider
from .retention import RetentionPolicy
from .schedule import ScheduleRegistrar, SubjectKind
from .templates import TemplateEngine

console = Console()

DEFAULT_SITE_MODULES: tuple[str, ...] = ("access_log", "error_log", "header", "security", "php")

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to webpanel's YAML config file.",
)

JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit results as JSON instead of a table.",
)

CADENCE_ARGUMENT = typer.Argument(..., help="Backup cadence: daily or weekly.")

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Web hosting control panel CLI.

        Provision Caddy sites, compose their configuration from modules and
        manage retained, scheduled backups of sites and databases.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger
    templates: TemplateEngine
    modules: ModuleRegistry
    composer: ModuleComposer
    caddy: CaddyProvider
    retention: RetentionPolicy
    site_backups: BackupArchiver
    database_backups: BackupArchiver
    schedules: ScheduleRegistrar

    def archiver_for(self, kind: SubjectKind) -> BackupArchiver:
        """Return the archiver handling subjects of *kind*."""
        if kind is SubjectKind.DATABASE:
            return self.database_backups
        return self.site_backups


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=int(exc.exit_code)) from exc

    logger = StructuredLogger(config.logs_dir)
    templates = TemplateEngine.with_overrides(config.templates_dir)
    modules = ModuleRegistry()
    composer = ModuleComposer(
        registry=modules,
        sites_dir=config.sites_dir,
        log_root=config.caddy.log_root,
    )
    caddy = CaddyProvider(
        templates=templates,
        sites_dir=config.sites_dir,
        web_root=config.web_root,
        log_root=config.caddy.log_root,
        caddyfile=config.caddy.caddyfile,
        caddy_bin=config.caddy.caddy_bin,
    )
    retention = RetentionPolicy()
    site_backups = BackupArchiver(
        root=config.backups.root,
        producer=TarArchiveProducer(compression_level=config.backups.compression_level),
        retention=retention,
    )
    database_backups = BackupArchiver(
        root=config.backups.root,
        producer=DatabaseDumpProducer(
            dump_bin=config.database.dump_bin,
            user=config.database.user,
            compression_level=config.backups.compression_level,
        ),
        retention=retention,
    )
    schedules = ScheduleRegistrar(
        templates=templates,
        cron_dir=config.schedule.cron_dir,
        user=config.schedule.user,
        executable=config.schedule.command,
    )
    runtime = RuntimeContext(
        config=config,
        logger=logger,
        templates=templates,
        modules=modules,
        composer=composer,
        caddy=caddy,
        retention=retention,
        site_backups=site_backups,
        database_backups=database_backups,
        schedules=schedules,
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the webpanel version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        runtime = _ensure_runtime(ctx, config_file)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"webpanel {__version__}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=0)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=0)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = 2,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


def _engine_error(op: OperationScope, exc: WebpanelError) -> NoReturn:
    _command_error(op, str(exc), rc=int(exc.exit_code))


def _validate_domain(value: str) -> str:
    """Validate and normalise a domain/FQDN."""
    normalised = value.strip().lower()
    if not normalised:
        raise ValueError("Domain must be a non-empty string.")
    if len(normalised) > 255:
        raise ValueError("Domain must be 255 characters or fewer.")
    if normalised.startswith(("-", ".")) or normalised.endswith(("-", ".")):
        raise ValueError("Domain cannot start or end with a hyphen or dot.")
    if ".." in normalised:
        raise ValueError("Domain cannot contain empty labels.")
    if not re.fullmatch(r"[a-z0-9.-]+", normalised):
        raise ValueError("Domain may contain letters, numbers, dots, and hyphens.")
    return normalised


def _validate_database(value: str) -> str:
    """Validate a database name used as a backup subject."""
    normalised = value.strip()
    if not normalised:
        raise ValueError("Database name must be a non-empty string.")
    if len(normalised) > 64:
        raise ValueError("Database name must be 64 characters or fewer.")
    if not re.fullmatch(r"[A-Za-z0-9_-]+", normalised):
        raise ValueError("Database name may contain letters, numbers, underscores, and hyphens.")
    return normalised


def _validate_subject(kind: SubjectKind, value: str) -> str:
    if kind is SubjectKind.DATABASE:
        return _validate_database(value)
    return _validate_domain(value)


def _require_subject(op: OperationScope, kind: SubjectKind, value: str) -> str:
    try:
        return _validate_subject(kind, value)
    except ValueError as exc:
        _command_error(op, str(exc), rc=2)


def _default_params(definition: ModuleDefinition, domain: str, params: Sequence[str]) -> list[str]:
    """Fill in the domain for modules whose only required parameter is the site."""
    if params:
        return list(params)
    if definition.required_params == ("domain",):
        return [domain]
    return []


def _format_caddy_detail(result: subprocess.CompletedProcess[str]) -> str:
    args = result.args
    if isinstance(args, (list, tuple)):
        command = " ".join(str(item) for item in args)
    else:
        command = str(args)
    detail = f"command={command} rc={result.returncode}"
    stderr = (getattr(result, "stderr", "") or "").strip()
    if stderr:
        detail += f" stderr={stderr}"
    return detail


def _apply_caddy_changes(
    runtime: RuntimeContext,
    op: OperationScope,
    *,
    restore: SiteDocument | None = None,
) -> None:
    """Validate and reload Caddy after a configuration change.

    When Caddy rejects the change and *restore* holds the document as it was
    before the change, it is written back before the command fails.
    """
    if not runtime.config.caddy.reload:
        op.add_step("caddy.reload", status="skipped", detail="reload disabled")
        return
    try:
        validation = runtime.caddy.test_config()
        op.add_step("caddy.validate", status="success", detail=_format_caddy_detail(validation))
        reload_result = runtime.caddy.reload()
        op.add_step("caddy.reload", status="success", detail=_format_caddy_detail(reload_result))
    except CaddyError as exc:
        if restore is not None:
            try:
                restore.save()
            except DocumentIOError as restore_exc:
                op.add_step("site.restore", status="error", detail=str(restore_exc))
            else:
                op.add_step("site.restore", status="success", detail=str(restore.path))
        _command_error(op, f"caddy reload failed: {exc}", rc=int(exc.exit_code))


def _print_json(data: Mapping[str, object]) -> None:
    console.print_json(data=data)


site_app = typer.Typer(help="Provision and remove websites.")
module_app = typer.Typer(help="Compose site configuration from modules.")
backup_app = typer.Typer(help="Back up site directories.")
dbbackup_app = typer.Typer(help="Back up databases.")
config_app = typer.Typer(help="Inspect the effective configuration.")

app.add_typer(site_app, name="site")
app.add_typer(module_app, name="module")
app.add_typer(backup_app, name="backup")
app.add_typer(dbbackup_app, name="dbbackup")
app.add_typer(config_app, name="config")


# ----------------------------------------------------------------------
# site
# ----------------------------------------------------------------------
@site_app.command("add")
def site_add(
    ctx: typer.Context,
    domain: str = typer.Argument(..., help="Domain name of the new site."),
    no_default_modules: bool = typer.Option(
        False,
        "--no-default-modules",
        help="Create the site without importing the default modules.",
    ),
) -> None:
    """Create a site directory, welcome page and Caddy configuration."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "site add",
        args={"domain": domain, "no_default_modules": no_default_modules},
        target={"kind": "site", "name": domain},
    ) as op:
        domain = _require_subject(op, SubjectKind.SITE, domain)
        if runtime.caddy.site_exists(domain):
            _command_error(op, f"Site '{domain}' already exists.", rc=2)

        try:
            result = runtime.caddy.provision(domain, reload_on_change=False)
        except WebpanelError as exc:
            _engine_error(op, exc)
        if result.validation_error:
            _command_error(
                op,
                f"caddy validation failed: {result.validation_error}",
                rc=4,
            )
        op.add_step("caddy.provision", status="success", detail=str(runtime.caddy.site_path(domain)))

        enabled: list[str] = []
        if not no_default_modules:
            for name in DEFAULT_SITE_MODULES:
                try:
                    definition = runtime.modules.lookup(name)
                    runtime.composer.enable(domain, name, _default_params(definition, domain, ()))
                except WebpanelError as exc:
                    _engine_error(op, exc)
                op.add_step("module.enable", status="success", detail=name)
                enabled.append(name)

        _apply_caddy_changes(runtime, op)
        console.print(f"[green]Site '{domain}' created.[/green]")
        console.print(f"Document root: {runtime.caddy.public_directory(domain)}")
        op.success(
            "Site created.",
            changed=2 + len(enabled),
            context={"domain": domain, "modules": enabled},
        )


@site_app.command("list")
def site_list(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """List provisioned sites and their enabled modules."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "site list",
        args={"json": json_output},
        target={"kind": "site", "scope": "all"},
    ) as op:
        entries: list[dict[str, object]] = []
        try:
            for domain in runtime.caddy.list_sites():
                entries.append(
                    {
                        "domain": domain,
                        "modules": runtime.composer.list_enabled(domain),
                        "public_dir": str(runtime.caddy.public_directory(domain)),
                    }
                )
        except WebpanelError as exc:
            _engine_error(op, exc)

        if json_output:
            _print_json({"sites": entries})
            op.success("Reported site list as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Domain", style="bold")
        table.add_column("Modules")
        table.add_column("Document Root")
        if not entries:
            table.add_row("(none)", "", "")
        else:
            for entry in entries:
                modules = entry["modules"]
                table.add_row(
                    str(entry["domain"]),
                    ", ".join(modules) if isinstance(modules, list) else "",
                    str(entry["public_dir"]),
                )
        console.print(table)
        op.success("Reported site list.", changed=0)


@site_app.command("rm")
def site_remove(
    ctx: typer.Context,
    domain: str = typer.Argument(..., help="Domain name of the site to remove."),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation.",
    ),
) -> None:
    """Delete a site's files, configuration, logs and backup schedules."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "site rm",
        args={"domain": domain, "yes": yes},
        target={"kind": "site", "name": domain},
    ) as op:
        domain = _require_subject(op, SubjectKind.SITE, domain)
        if not runtime.caddy.site_exists(domain):
            _command_error(op, f"Site '{domain}' not found.", rc=2)

        if not yes:
            confirmed = typer.confirm(
                f"Remove site '{domain}' and all of its files?",
                default=False,
            )
            if not confirmed:
                console.print("[yellow]Aborted.[/yellow] Site left untouched.")
                op.success("Site removal aborted by operator.", changed=0)
                return

        try:
            for cadence in Cadence:
                if runtime.schedules.disable(domain, cadence, kind=SubjectKind.SITE):
                    op.add_step("schedule.disable", status="success", detail=cadence.value)
            removed = runtime.caddy.remove(domain)
        except WebpanelError as exc:
            _engine_error(op, exc)
        for path in removed:
            op.add_step("site.remove", status="success", detail=str(path))

        _apply_caddy_changes(runtime, op)
        console.print(f"[green]Site '{domain}' removed.[/green]")
        op.success("Site removed.", changed=len(removed), context={"domain": domain})


# ----------------------------------------------------------------------
# module
# ----------------------------------------------------------------------
@module_app.command("list-available")
def module_list_available(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """List the modules in the catalog."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "module list-available",
        args={"json": json_output},
        target={"kind": "module", "scope": "catalog"},
    ) as op:
        entries = [
            {
                "name": definition.name,
                "required_params": list(definition.required_params),
                "description": definition.description,
            }
            for definition in runtime.modules
        ]
        if json_output:
            _print_json({"modules": entries})
            op.success("Reported module catalog as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Module", style="bold")
        table.add_column("Parameters")
        table.add_column("Description")
        for entry in entries:
            params = entry["required_params"]
            table.add_row(
                str(entry["name"]),
                " ".join(params) if isinstance(params, list) else "",
                str(entry["description"]),
            )
        console.print(table)
        op.success("Reported module catalog.", changed=0)


@module_app.command("list")
def module_list(
    ctx: typer.Context,
    domain: str = typer.Argument(..., help="Domain name of the site."),
    json_output: bool = JSON_OPTION,
) -> None:
    """List the modules enabled for a site."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "module list",
        args={"domain": domain, "json": json_output},
        target={"kind": "site", "name": domain},
    ) as op:
        domain = _require_subject(op, SubjectKind.SITE, domain)
        try:
            names = runtime.composer.list_enabled(domain)
        except WebpanelError as exc:
            _engine_error(op, exc)

        if json_output:
            _print_json({"domain": domain, "modules": names})
            op.success("Reported enabled modules as JSON.", changed=0)
            return

        if not names:
            console.print(f"No modules enabled for {domain}.")
        else:
            console.print(f"Modules enabled for [bold]{domain}[/bold]:")
            for name in names:
                console.print(f"  - {name}")
        op.success("Reported enabled modules.", changed=0)


@module_app.command("show")
def module_show(
    ctx: typer.Context,
    module: str = typer.Argument(..., help="Module name."),
) -> None:
    """Print the snippet a module contributes to the Caddy configuration."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "module show",
        args={"module": module},
        target={"kind": "module", "name": module},
    ) as op:
        try:
            definition = runtime.modules.lookup(module)
            snippet = definition.render(
                runtime.templates,
                {
                    "log_root": str(runtime.config.caddy.log_root),
                    "php_fpm_socket": runtime.config.caddy.php_fpm_socket,
                },
            )
        except WebpanelError as exc:
            _engine_error(op, exc)
        console.print(snippet, markup=False, highlight=False, end="")
        op.success("Rendered module snippet.", changed=0)


@module_app.command("add")
def module_add(
    ctx: typer.Context,
    domain: str = typer.Argument(..., help="Domain name of the site."),
    module: str = typer.Argument(..., help="Module to enable."),
    params: list[str] | None = typer.Argument(
        None,
        help="Parameters passed to the module import.",
    ),
) -> None:
    """Enable a module for a site."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "module add",
        args={"domain": domain, "module": module, "params": list(params or [])},
        target={"kind": "site", "name": domain},
    ) as op:
        domain = _require_subject(op, SubjectKind.SITE, domain)
        try:
            definition = runtime.modules.lookup(module)
            previous = SiteDocument.load(domain, runtime.composer.sites_dir)
            reference = runtime.composer.enable(
                domain,
                module,
                _default_params(definition, domain, params or []),
            )
        except WebpanelError as exc:
            _engine_error(op, exc)
        op.add_step("module.enable", status="success", detail=reference.to_line().strip())

        _apply_caddy_changes(runtime, op, restore=previous)
        console.print(f"[green]Module '{module}' enabled for {domain}.[/green]")
        op.success(
            "Module enabled.",
            changed=1,
            context={"domain": domain, "module": module, "params": list(reference.params)},
        )


@module_app.command("rm")
def module_remove(
    ctx: typer.Context,
    domain: str = typer.Argument(..., help="Domain name of the site."),
    module: str = typer.Argument(..., help="Module to disable."),
) -> None:
    """Disable a module for a site."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "module rm",
        args={"domain": domain, "module": module},
        target={"kind": "site", "name": domain},
    ) as op:
        domain = _require_subject(op, SubjectKind.SITE, domain)
        try:
            runtime.modules.lookup(module)
            previous = SiteDocument.load(domain, runtime.composer.sites_dir)
            runtime.composer.disable(domain, module)
        except WebpanelError as exc:
            _engine_error(op, exc)
        op.add_step("module.disable", status="success", detail=module)

        _apply_caddy_changes(runtime, op, restore=previous)
        console.print(f"[green]Module '{module}' disabled for {domain}.[/green]")
        op.success("Module disabled.", changed=1, context={"domain": domain, "module": module})


@module_app.command("init")
def module_init(ctx: typer.Context) -> None:
    """Install or refresh the module snippet files."""
    runtime = _get_runtime(ctx)
    modules_dir = runtime.config.modules_dir
    with runtime.logger.operation(
        "module init",
        args={},
        target={"kind": "module", "path": modules_dir},
    ) as op:
        try:
            changed = runtime.composer.install_snippets(
                runtime.templates,
                modules_dir,
                php_fpm_socket=runtime.config.caddy.php_fpm_socket,
            )
        except WebpanelError as exc:
            _engine_error(op, exc)
        for path in changed:
            op.add_step("module.snippet", status="success", detail=str(path))

        if changed:
            _apply_caddy_changes(runtime, op)
            console.print(
                f"[green]Installed {len(changed)} module snippet(s) into {modules_dir}.[/green]"
            )
        else:
            console.print(f"Module snippets are up to date in {modules_dir}.")
        op.success("Module snippets installed.", changed=len(changed))


# ----------------------------------------------------------------------
# backup / dbbackup
# ----------------------------------------------------------------------
def _backup_source(runtime: RuntimeContext, kind: SubjectKind, subject: str) -> str | Path:
    if kind is SubjectKind.DATABASE:
        return subject
    return runtime.config.site_directory(subject)


def _run_backup(ctx: typer.Context, kind: SubjectKind, cadence: Cadence, subject: str) -> None:
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        f"{kind.value} run",
        args={"cadence": cadence.value, "subject": subject},
        target={"kind": kind.value, "name": subject},
    ) as op:
        subject = _require_subject(op, kind, subject)
        archiver = runtime.archiver_for(kind)
        try:
            artifact = archiver.run(
                subject,
                cadence,
                _backup_source(runtime, kind, subject),
                op=op,
            )
        except WebpanelError as exc:
            _engine_error(op, exc)

        console.print(
            f"[green]{cadence.value.capitalize()} backup of {subject} written to "
            f"{artifact.path}.[/green]"
        )
        op.success(
            "Backup created.",
            changed=1,
            backups=[str(artifact.path)],
            context=artifact.to_dict(),
        )


def _enable_schedule(ctx: typer.Context, kind: SubjectKind, cadence: Cadence, subject: str) -> None:
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        f"{kind.value} enable",
        args={"cadence": cadence.value, "subject": subject},
        target={"kind": kind.value, "name": subject},
    ) as op:
        subject = _require_subject(op, kind, subject)
        if kind is SubjectKind.SITE and not runtime.config.site_directory(subject).exists():
            _command_error(op, f"Site '{subject}' not found.", rc=2)
        try:
            entry = runtime.schedules.enable(subject, cadence, kind=kind)
        except WebpanelError as exc:
            _engine_error(op, exc)
        op.add_step("schedule.enable", status="success", detail=str(entry.path))
        console.print(f"[green]Enabled {cadence.value} {kind.value} for {subject}.[/green]")
        op.success(
            "Backup schedule enabled.",
            changed=1,
            context={"path": entry.path, "command": entry.command},
        )


def _disable_schedule(ctx: typer.Context, kind: SubjectKind, cadence: Cadence, subject: str) -> None:
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        f"{kind.value} disable",
        args={"cadence": cadence.value, "subject": subject},
        target={"kind": kind.value, "name": subject},
    ) as op:
        subject = _require_subject(op, kind, subject)
        try:
            removed = runtime.schedules.disable(subject, cadence, kind=kind)
        except WebpanelError as exc:
            _engine_error(op, exc)
        if not removed:
            console.print(
                f"[yellow]{cadence.value.capitalize()} {kind.value} was not enabled for "
                f"{subject}.[/yellow]"
            )
            op.success("Backup schedule already absent.", changed=0)
            return
        op.add_step("schedule.disable", status="success", detail=cadence.value)
        console.print(f"[green]Disabled {cadence.value} {kind.value} for {subject}.[/green]")
        op.success("Backup schedule disabled.", changed=1)


def _list_backups(
    ctx: typer.Context,
    kind: SubjectKind,
    cadence: Cadence,
    subject: str,
    json_output: bool,
) -> None:
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        f"{kind.value} list",
        args={"cadence": cadence.value, "subject": subject, "json": json_output},
        target={"kind": kind.value, "name": subject},
    ) as op:
        subject = _require_subject(op, kind, subject)
        try:
            artifacts = runtime.archiver_for(kind).list_artifacts(subject, cadence)
        except WebpanelError as exc:
            _engine_error(op, exc)
        scheduled = runtime.schedules.is_scheduled(subject, cadence, kind=kind)

        if json_output:
            _print_json(
                {
                    "subject": subject,
                    "cadence": cadence.value,
                    "scheduled": scheduled,
                    "backups": [artifact.to_dict() for artifact in artifacts],
                }
            )
            op.success("Reported backups as JSON.", changed=0)
            return

        state = "[green]enabled[/green]" if scheduled else "[yellow]disabled[/yellow]"
        console.print(f"{cadence.value.capitalize()} schedule for {subject}: {state}")
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Date", style="bold")
        table.add_column("Full")
        table.add_column("Path")
        if not artifacts:
            table.add_row("(none)", "", "")
        else:
            for artifact in artifacts:
                table.add_row(
                    artifact.created_at.strftime("%Y-%m-%d"),
                    "yes" if artifact.full else "no",
                    str(artifact.path),
                )
        console.print(table)
        op.success("Reported backups.", changed=0)


@backup_app.command("run")
def backup_run(
    ctx: typer.Context,
    cadence: Cadence = CADENCE_ARGUMENT,
    domain: str = typer.Argument(..., help="Domain name of the site to back up."),
) -> None:
    """Archive a site directory and prune stale archives."""
    _run_backup(ctx, SubjectKind.SITE, cadence, domain)


@backup_app.command("enable")
def backup_enable(
    ctx: typer.Context,
    cadence: Cadence = CADENCE_ARGUMENT,
    domain: str = typer.Argument(..., help="Domain name of the site."),
) -> None:
    """Schedule recurring backups of a site."""
    _enable_schedule(ctx, SubjectKind.SITE, cadence, domain)


@backup_app.command("disable")
def backup_disable(
    ctx: typer.Context,
    cadence: Cadence = CADENCE_ARGUMENT,
    domain: str = typer.Argument(..., help="Domain name of the site."),
) -> None:
    """Stop recurring backups of a site."""
    _disable_schedule(ctx, SubjectKind.SITE, cadence, domain)


@backup_app.command("list")
def backup_list(
    ctx: typer.Context,
    cadence: Cadence = CADENCE_ARGUMENT,
    domain: str = typer.Argument(..., help="Domain name of the site."),
    json_output: bool = JSON_OPTION,
) -> None:
    """List stored archives of a site."""
    _list_backups(ctx, SubjectKind.SITE, cadence, domain, json_output)


@backup_app.command("prune")
def backup_prune(
    ctx: typer.Context,
    cadence: Cadence = CADENCE_ARGUMENT,
    domain: str = typer.Argument(..., help="Domain name of the site."),
) -> None:
    """Remove site archives older than the retention threshold."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "backup prune",
        args={"cadence": cadence.value, "subject": domain},
        target={"kind": "backup", "name": domain},
    ) as op:
        domain = _require_subject(op, SubjectKind.SITE, domain)
        directory = runtime.site_backups.destination_dir(domain, cadence)
        report = runtime.retention.prune(directory, cadence)
        for path in report.removed:
            op.add_step("backup.prune", status="success", detail=f"{path}:removed")

        threshold_days = runtime.retention.threshold(cadence).days
        console.print(
            f"Removed {len(report.removed)} {cadence.value} archive(s) older than "
            f"{threshold_days} days; {len(report.kept)} kept."
        )
        if report.failed:
            failures = [f"{path}: {reason}" for path, reason in report.failed]
            for failure in failures:
                console.print(f"[yellow]Could not remove {failure}[/yellow]")
            op.warning(
                "Some archives could not be removed.",
                warnings=failures,
                changed=len(report.removed),
            )
            return
        op.success("Retention applied.", changed=len(report.removed))


@dbbackup_app.command("run")
def dbbackup_run(
    ctx: typer.Context,
    cadence: Cadence = CADENCE_ARGUMENT,
    database: str = typer.Argument(..., help="Name of the database to dump."),
) -> None:
    """Dump a database to a compressed archive and prune stale dumps."""
    _run_backup(ctx, SubjectKind.DATABASE, cadence, database)


@dbbackup_app.command("enable")
def dbbackup_enable(
    ctx: typer.Context,
    cadence: Cadence = CADENCE_ARGUMENT,
    database: str = typer.Argument(..., help="Name of the database."),
) -> None:
    """Schedule recurring dumps of a database."""
    _enable_schedule(ctx, SubjectKind.DATABASE, cadence, database)


@dbbackup_app.command("disable")
def dbbackup_disable(
    ctx: typer.Context,
    cadence: Cadence = CADENCE_ARGUMENT,
    database: str = typer.Argument(..., help="Name of the database."),
) -> None:
    """Stop recurring dumps of a database."""
    _disable_schedule(ctx, SubjectKind.DATABASE, cadence, database)


@dbbackup_app.command("list")
def dbbackup_list(
    ctx: typer.Context,
    cadence: Cadence = CADENCE_ARGUMENT,
    database: str = typer.Argument(..., help="Name of the database."),
    json_output: bool = JSON_OPTION,
) -> None:
    """List stored dumps of a database."""
    _list_backups(ctx, SubjectKind.DATABASE, cadence, database, json_output)


# ----------------------------------------------------------------------
# config
# ----------------------------------------------------------------------
@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            _print_json(data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, dict):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
