"""CLI entrypoint for sportlink-sync.

Each command reads one Sportlink or Nikki JSON export, mirrors it into
the local SQLite store and pushes the changes to Stadion or Laposta.
Any per-record failure makes the command exit with status 1.
"""

from __future__ import annotations

import sys
from collections import Counter
from pathlib import Path
from typing import NoReturn

import click

from sportlink_sync.client import LapostaClient, StadionClient
from sportlink_sync.config import LAPOSTA_LIST_ENV_KEYS, settings
from sportlink_sync.domains import CASES, CONTRIBUTIONS, DOMAINS, LAPOSTA, MEMBERS, PARENTS, EntityDomain
from sportlink_sync.errors import ConfigError, SyncError
from sportlink_sync.log_config import configure_logging
from sportlink_sync.sources import load_records
from sportlink_sync.sync.engine import SyncEngine, SyncReport
from sportlink_sync.sync.linker import RelationshipLinker
from sportlink_sync.sync.reconcile import Reconciler, StatusLabel
from sportlink_sync.sync.retry import Pacer, RetryPolicy
from sportlink_sync.sync.store import MirrorDatabase, MirrorTable
from sportlink_sync.sync.targets import LapostaTarget, StadionTarget

INPUT_FILE = click.Path(exists=True, dir_okay=False, path_type=Path)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _resource_for(domain: EntityDomain) -> str:
    if domain is CONTRIBUTIONS:
        return settings.contribution_type
    if domain is CASES:
        return settings.case_type
    return settings.person_type


def _stadion_target(domain: EntityDomain, client: StadionClient) -> StadionTarget:
    return StadionTarget(
        client,
        _resource_for(domain),
        meta_key=domain.lookup_meta_key,
        email_fallback=domain.email_fallback,
    )


def _parent_target(client: StadionClient, members_table: MirrorTable) -> StadionTarget:
    # Parents share the person post type with members; never adopt a member post.
    return StadionTarget(
        client,
        _resource_for(PARENTS),
        meta_key=PARENTS.lookup_meta_key,
        email_fallback=PARENTS.email_fallback,
        foreign_meta_key=MEMBERS.lookup_meta_key,
        foreign_ids=members_table.remote_id_map().values(),
    )


def _build_pacer() -> Pacer:
    return Pacer(delay=settings.rate_limit_delay)


def _build_retry_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=max(1, settings.max_attempts))


def _laposta_table(list_index: int) -> str:
    return f"laposta_list{list_index}_members"


def _echo_report(report: SyncReport) -> None:
    line = (
        f"{report.domain}: {report.total} total, {report.skipped} skipped, "
        f"{report.created} created, {report.updated} updated, "
        f"{report.unchanged} unchanged, {report.deleted} deleted, "
        f"{report.forgotten} forgotten"
    )
    if report.linked or report.unresolved_links:
        line += f", {report.linked} linked, {report.unresolved_links} unresolved"
    click.echo(line)
    if report.deletions_suppressed:
        click.echo(
            f"{report.domain}: empty batch, removals skipped "
            "(pass --confirm-empty to remove everything)",
            err=True,
        )
    for issue in report.errors:
        click.echo(f"FAIL [{issue.operation}] {issue.key}: {issue.message}", err=True)


def _finish(reports: list[SyncReport]) -> None:
    for report in reports:
        _echo_report(report)
    if not all(r.success for r in reports):
        sys.exit(1)


def _run_stadion(
    ctx: click.Context,
    domain: EntityDomain,
    input_file: Path,
    *,
    force: bool,
    skip_deletes: bool,
    confirm_empty: bool,
) -> list[SyncReport]:
    """Sync one Stadion domain; members are followed by their parents."""
    obj = ctx.obj
    configure_logging(obj["verbose"], settings.log_dir, domain.name)
    try:
        client = StadionClient()
        records = load_records(input_file, domain.name)
    except SyncError as exc:
        _fail(str(exc))

    pacer = _build_pacer()
    retry_policy = _build_retry_policy()
    options = {"force": force, "confirm_empty": confirm_empty, "skip_deletes": skip_deletes}
    reports = []
    try:
        with MirrorDatabase(obj["db"]) as database:
            if domain is not PARENTS:
                engine = SyncEngine(
                    domain,
                    database.table(domain.table, domain.key_field),
                    _stadion_target(domain, client),
                    pacer=pacer,
                    retry_policy=retry_policy,
                )
                reports.append(engine.run(records, **options))

            if domain in (MEMBERS, PARENTS) and not obj.get("skip_parents"):
                # Built after the members ran so their new remote IDs resolve.
                members_table = database.table(MEMBERS.table, MEMBERS.key_field)
                linker = RelationshipLinker(
                    members_table,
                    _stadion_target(MEMBERS, client),
                    pacer,
                )
                engine = SyncEngine(
                    PARENTS,
                    database.table(PARENTS.table, PARENTS.key_field),
                    _parent_target(client, members_table),
                    pacer=pacer,
                    retry_policy=retry_policy,
                    linker=linker,
                )
                reports.append(engine.run(records, **options))
    finally:
        client.close()
    return reports


# ------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to the console.")
@click.option(
    "--db",
    "db_path",
    default=None,
    help="Mirror database path (default: SYNC_DB_PATH or sportlink-sync.sqlite).",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, db_path: str | None) -> None:
    """sportlink-sync CLI: mirror Sportlink exports into Stadion and Laposta."""
    try:
        settings.validate()
    except ConfigError as exc:
        _fail(str(exc))
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["db"] = db_path or settings.db_path


def _sync_options(func):
    func = click.option(
        "--confirm-empty",
        is_flag=True,
        help=(
            "Allow an empty export to remove every tracked record. "
            "Without it an empty export removes nothing."
        ),
    )(func)
    func = click.option(
        "--skip-deletes", is_flag=True, help="Do not remove records missing from the export."
    )(func)
    func = click.option(
        "--force", is_flag=True, help="Push every record, even if unchanged."
    )(func)
    func = click.option(
        "--input", "input_file", required=True, type=INPUT_FILE, help="JSON export to sync."
    )(func)
    return func


@cli.command()
@_sync_options
@click.option("--skip-parents", is_flag=True, help="Do not sync parents derived from members.")
@click.pass_context
def members(
    ctx: click.Context,
    input_file: Path,
    force: bool,
    skip_deletes: bool,
    confirm_empty: bool,
    skip_parents: bool,
) -> None:
    """Sync members to Stadion, then their parents with links.

    Members missing from the export are removed from Stadion.  An export
    with no members at all removes nothing unless --confirm-empty is given.
    """
    ctx.obj["skip_parents"] = skip_parents
    _finish(
        _run_stadion(
            ctx, MEMBERS, input_file,
            force=force, skip_deletes=skip_deletes, confirm_empty=confirm_empty,
        )
    )


@cli.command()
@_sync_options
@click.pass_context
def parents(
    ctx: click.Context, input_file: Path, force: bool, skip_deletes: bool, confirm_empty: bool
) -> None:
    """Sync only the parents derived from a member export."""
    _finish(
        _run_stadion(
            ctx, PARENTS, input_file,
            force=force, skip_deletes=skip_deletes, confirm_empty=confirm_empty,
        )
    )


@cli.command()
@_sync_options
@click.pass_context
def contributions(
    ctx: click.Context, input_file: Path, force: bool, skip_deletes: bool, confirm_empty: bool
) -> None:
    """Sync Nikki contributions to Stadion."""
    _finish(
        _run_stadion(
            ctx, CONTRIBUTIONS, input_file,
            force=force, skip_deletes=skip_deletes, confirm_empty=confirm_empty,
        )
    )


@cli.command()
@_sync_options
@click.pass_context
def cases(
    ctx: click.Context, input_file: Path, force: bool, skip_deletes: bool, confirm_empty: bool
) -> None:
    """Sync discipline cases to Stadion."""
    _finish(
        _run_stadion(
            ctx, CASES, input_file,
            force=force, skip_deletes=skip_deletes, confirm_empty=confirm_empty,
        )
    )


@cli.command()
@_sync_options
@click.option(
    "--list",
    "list_index",
    type=click.IntRange(1, len(LAPOSTA_LIST_ENV_KEYS)),
    default=1,
    show_default=True,
    help="Which configured Laposta list to sync.",
)
@click.pass_context
def laposta(
    ctx: click.Context,
    input_file: Path,
    force: bool,
    skip_deletes: bool,
    confirm_empty: bool,
    list_index: int,
) -> None:
    """Sync member emails to a Laposta mailing list."""
    obj = ctx.obj
    configure_logging(obj["verbose"], settings.log_dir, f"laposta-list{list_index}")
    try:
        list_id = settings.laposta_list_id(list_index)
        if not list_id:
            raise ConfigError(
                f"{LAPOSTA_LIST_ENV_KEYS[list_index - 1]} environment variable is required"
            )
        client = LapostaClient()
        records = load_records(input_file, LAPOSTA.name)
    except SyncError as exc:
        _fail(str(exc))

    try:
        with MirrorDatabase(obj["db"]) as database:
            engine = SyncEngine(
                LAPOSTA,
                database.table(_laposta_table(list_index), LAPOSTA.key_field),
                LapostaTarget(client, list_id),
                pacer=_build_pacer(),
                retry_policy=_build_retry_policy(),
            )
            report = engine.run(
                records,
                force=force,
                confirm_empty=confirm_empty,
                skip_deletes=skip_deletes,
            )
    finally:
        client.close()
    _finish([report])


@cli.command()
@click.option(
    "--domain",
    "domain_name",
    type=click.Choice(sorted(DOMAINS)),
    default=None,
    help="Only report on one domain.",
)
@click.pass_context
def status(ctx: click.Context, domain_name: str | None) -> None:
    """Show how many tracked records are in sync, changed or unsynced."""
    names = [domain_name] if domain_name else sorted(DOMAINS)
    with MirrorDatabase(ctx.obj["db"]) as database:
        for name in names:
            domain = DOMAINS[name]
            if domain is LAPOSTA:
                tables = [
                    (f"{name} list {i}", _laposta_table(i))
                    for i in range(1, len(LAPOSTA_LIST_ENV_KEYS) + 1)
                ]
            else:
                tables = [(name, domain.table)]
            for label, table_name in tables:
                table = database.table(table_name, domain.key_field)
                counts = Counter(e.status for e in Reconciler(domain, table).status())
                breakdown = ", ".join(f"{counts[s]} {s.value}" for s in StatusLabel)
                click.echo(f"{label}: {sum(counts.values())} tracked ({breakdown})")


if __name__ == "__main__":
    cli()
