"""CLI for loft data lifecycle: export, backups, import and archival.

Usage:
    pigeonfarm-lifecycle --profile local export --owner 7 -o loft.json
    pigeonfarm-lifecycle --profile local backup save --owner 7
    pigeonfarm-lifecycle backup list --owner 7
    pigeonfarm-lifecycle --profile local backup restore backup_user7_....json --owner 7 --clear-existing
    pigeonfarm-lifecycle --profile local import loft.json --owner 9 --yes
    pigeonfarm-lifecycle --profile local clear --owner 7
    pigeonfarm-lifecycle --profile local archive run --executed-by 1
    pigeonfarm-lifecycle --profile local archive restore 41 42

Commands:
    export   - Export an owner's data as a snapshot
    backup   - Save, list, restore and delete backup files
    import   - Restore an uploaded snapshot file
    clear    - Delete all of an owner's loft data
    archive  - Run archival, view stats/logs, restore archived notifications
"""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from pigeonfarm_lifecycle.backup.storage import BackupStorage
from pigeonfarm_lifecycle.config.loader import load_config
from pigeonfarm_lifecycle.config.models import LifecycleConfig
from pigeonfarm_lifecycle.errors import LifecycleError
from pigeonfarm_lifecycle.factory import ProfileNotFoundError, get_adapter
from pigeonfarm_lifecycle.service import LifecycleService

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_config(args: argparse.Namespace) -> LifecycleConfig:
    return load_config(Path(args.config) if args.config else None)


def _confirm(prompt: str) -> bool:
    response = input(f"{prompt} [y/N] ")
    return response.lower() in ["y", "yes"]


def _print_error(error: LifecycleError, verbose: bool) -> None:
    details = error.to_dict(debug=verbose)
    console.print(f"[bold red]x[/bold red] {details['code']}: {escape(details['message'])}")
    if "cause" in details:
        console.print(f"  [dim]{escape(details['cause'])}[/dim]")


async def _run_with_service(
    args: argparse.Namespace,
    action: Callable[[LifecycleService], Awaitable[int]],
) -> int:
    """Build the service for the selected profile, run ``action``, close the adapter."""
    try:
        config = _load_config(args)
        adapter = get_adapter(args.profile, config)
    except (FileNotFoundError, ProfileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    try:
        return await action(LifecycleService.from_config(adapter, config))
    except LifecycleError as e:
        _print_error(e, args.verbose)
        return 1
    finally:
        await adapter.close()


def _print_counts(title: str, counts: dict[str, Any]) -> None:
    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("Collection")
    table.add_column("Count", justify="right")
    for name, value in counts.items():
        table.add_row(name, str(value))
    console.print(table)


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_export(args: argparse.Namespace) -> int:
    async def action(service: LifecycleService) -> int:
        snapshot = await service.export(args.owner)
        if args.output:
            try:
                Path(args.output).write_text(
                    snapshot.model_dump_json(indent=2), encoding="utf-8"
                )
            except OSError as e:
                console.print(f"[red]Error: cannot write {args.output}: {e}[/red]")
                return 1
            console.print(f"[bold green]v[/bold green] Snapshot written to {args.output}")
            _print_counts("Exported", snapshot.statistics)
        else:
            console.print_json(snapshot.model_dump_json())
        return 0

    return await _run_with_service(args, action)


async def _async_backup_save(args: argparse.Namespace) -> int:
    async def action(service: LifecycleService) -> int:
        backup = await service.save_backup(args.owner)
        console.print(f"[bold green]v[/bold green] Backup saved: {backup.filename}")
        console.print(f"  Location: {backup.path.parent}")
        console.print(f"  Size: {backup.size_bytes / 1024:.2f} KB")
        return 0

    return await _run_with_service(args, action)


async def _async_backup_restore(args: argparse.Namespace) -> int:
    if not args.yes:
        console.print(f"This will restore owner {args.owner}'s data from: {args.filename}")
        if args.clear_existing:
            console.print("  [yellow]WARNING: Existing couples, eggs, pigeonneaux, "
                          "health records and sales will be deleted first![/yellow]")
        if not _confirm("Continue?"):
            console.print("Cancelled.")
            return 0

    async def action(service: LifecycleService) -> int:
        result = await service.restore_backup(
            args.owner, args.filename, clear_existing=args.clear_existing
        )
        console.print("[bold green]v[/bold green] Restore complete.")
        _print_counts("Imported", result.imported)
        for warning in result.warnings:
            console.print(f"  [yellow]{warning}[/yellow]")
        return 0

    return await _run_with_service(args, action)


async def _async_import(args: argparse.Namespace) -> int:
    try:
        payload = json.loads(Path(args.file).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Error: cannot read {args.file}: {e}[/red]")
        return 1

    if not args.yes:
        console.print(f"This will import {args.file} into owner {args.owner}'s account")
        if args.clear_existing:
            console.print("  [yellow]WARNING: Existing data will be deleted first![/yellow]")
        if not _confirm("Continue?"):
            console.print("Cancelled.")
            return 0

    async def action(service: LifecycleService) -> int:
        result = await service.import_snapshot(
            args.owner,
            payload,
            clear_existing=args.clear_existing,
            skip_notifications=not args.include_notifications,
        )
        console.print("[bold green]v[/bold green] Import complete.")
        _print_counts("Imported", result.imported)
        for warning in result.warnings:
            console.print(f"  [yellow]{warning}[/yellow]")
        return 0

    return await _run_with_service(args, action)


async def _async_clear(args: argparse.Namespace) -> int:
    if not args.yes:
        console.print(
            "[yellow]WARNING: This deletes every couple, egg, pigeonneau, health record, "
            f"sale and notification of owner {args.owner}![/yellow]"
        )
        if not _confirm("Continue?"):
            console.print("Cancelled.")
            return 0

    async def action(service: LifecycleService) -> int:
        deleted = await service.clear_data(args.owner)
        console.print(f"[bold green]v[/bold green] Data of owner {args.owner} cleared.")
        _print_counts("Deleted", deleted)
        return 0

    return await _run_with_service(args, action)


async def _async_archive(args: argparse.Namespace) -> int:
    async def action(service: LifecycleService) -> int:
        if args.archive_command == "run":
            summary = await service.run_archive(executed_by=args.executed_by)
            _print_counts("Archive run", {
                "notifications archived": summary.notifications.archived,
                "notifications deleted": summary.notifications.deleted,
                "push notifications archived": summary.push_notifications.archived,
                "push notifications deleted": summary.push_notifications.deleted,
                "audit logs deleted": summary.audit_logs.deleted,
                "reset codes deleted": summary.reset_codes.deleted,
                "total archived": summary.total_archived,
                "total deleted": summary.total_deleted,
            })
        elif args.archive_command == "notifications":
            _print_counts("Notifications", (await service.archive_notifications()).model_dump())
        elif args.archive_command == "push-notifications":
            _print_counts("Push notifications",
                          (await service.archive_push_notifications()).model_dump())
        elif args.archive_command == "clean-logs":
            results = await service.clean_logs()
            _print_counts("Cleanup", {name: r.deleted for name, r in results.items()})
        elif args.archive_command == "stats":
            _print_counts("Archive stats", (await service.archive_stats()).model_dump())
        elif args.archive_command == "logs":
            page = await service.list_archive_logs(limit=args.limit, offset=args.offset)
            console.print_json(data=page, default=str)
        elif args.archive_command == "archived":
            page = await service.list_archived_notifications(
                limit=args.limit, offset=args.offset, owner_id=args.owner
            )
            console.print_json(data=page, default=str)
        elif args.archive_command == "restore":
            restored = await service.restore_notifications(args.ids)
            console.print(f"[bold green]v[/bold green] {restored} notifications restored")
        return 0

    return await _run_with_service(args, action)


# ============================================================================
# Sync command wrappers
# ============================================================================


def cmd_export(args: argparse.Namespace) -> int:
    """Export an owner's snapshot.  Wraps the async implementation with ``asyncio.run()``."""
    return asyncio.run(_async_export(args))


def cmd_backup_save(args: argparse.Namespace) -> int:
    return asyncio.run(_async_backup_save(args))


def cmd_backup_restore(args: argparse.Namespace) -> int:
    return asyncio.run(_async_backup_restore(args))


def cmd_backup_list(args: argparse.Namespace) -> int:
    """List backup files.

    Reads only the local backup directory -- no database calls.

    Returns:
        0 on success, 1 if the config file is missing.
    """
    try:
        config = _load_config(args)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    storage = BackupStorage(config.backup)
    if args.all:
        backups = storage.list_all_backups()
    elif args.owner is not None:
        backups = storage.list_backups(args.owner)
    else:
        console.print("[red]Error: pass --owner N or --all[/red]")
        return 1

    if not backups:
        console.print("[yellow]No backups found.[/yellow]")
        return 0

    table = Table(title="Backups", show_header=True, header_style="bold")
    table.add_column("Owner", justify="right")
    table.add_column("Filename")
    table.add_column("Created")
    table.add_column("Size", justify="right")
    for backup in backups:
        table.add_row(
            str(backup.owner_id),
            backup.filename,
            backup.created_at.isoformat(timespec="seconds"),
            f"{backup.size_bytes / 1024:.2f} KB",
        )
    console.print(table)
    return 0


def cmd_backup_delete(args: argparse.Namespace) -> int:
    """Delete one backup file (local filesystem only)."""
    try:
        config = _load_config(args)
        BackupStorage(config.backup).delete_backup(args.owner, args.filename)
    except FileNotFoundError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    except LifecycleError as e:
        _print_error(e, args.verbose)
        return 1

    console.print(f"[bold green]v[/bold green] Deleted {args.filename}")
    return 0


def cmd_import(args: argparse.Namespace) -> int:
    return asyncio.run(_async_import(args))


def cmd_clear(args: argparse.Namespace) -> int:
    return asyncio.run(_async_clear(args))


def cmd_archive(args: argparse.Namespace) -> int:
    return asyncio.run(_async_archive(args))


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pigeonfarm-lifecycle",
        description="Per-owner backup, restore and archival for loft data",
    )
    parser.add_argument("--config", help="Path to lifecycle.toml (default: ./lifecycle.toml)")
    parser.add_argument("--profile", help="Database profile (default: $LIFECYCLE_DB_PROFILE)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # export command
    p_export = subparsers.add_parser("export", help="Export an owner's data")
    p_export.add_argument("--owner", type=int, required=True, help="Owner (user) id")
    p_export.add_argument("--output", "-o", help="Write snapshot to file instead of stdout")
    p_export.set_defaults(func=cmd_export)

    # backup commands
    p_backup = subparsers.add_parser("backup", help="Manage backup files")
    backup_sub = p_backup.add_subparsers(dest="backup_command", required=True)

    p_save = backup_sub.add_parser("save", help="Export and save a backup file")
    p_save.add_argument("--owner", type=int, required=True)
    p_save.set_defaults(func=cmd_backup_save)

    p_list = backup_sub.add_parser("list", help="List backup files")
    p_list.add_argument("--owner", type=int)
    p_list.add_argument("--all", action="store_true", help="List every owner's backups (admin)")
    p_list.set_defaults(func=cmd_backup_list)

    p_restore = backup_sub.add_parser("restore", help="Restore from a saved backup")
    p_restore.add_argument("filename")
    p_restore.add_argument("--owner", type=int, required=True)
    p_restore.add_argument("--clear-existing", action="store_true",
                           help="Delete the owner's current data first")
    p_restore.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")
    p_restore.set_defaults(func=cmd_backup_restore)

    p_delete = backup_sub.add_parser("delete", help="Delete a backup file")
    p_delete.add_argument("filename")
    p_delete.add_argument("--owner", type=int, required=True)
    p_delete.set_defaults(func=cmd_backup_delete)

    # import command
    p_import = subparsers.add_parser("import", help="Import a snapshot file")
    p_import.add_argument("file", help="Path to snapshot JSON file")
    p_import.add_argument("--owner", type=int, required=True, help="Destination owner id")
    p_import.add_argument("--clear-existing", action="store_true",
                          help="Delete the owner's current data first")
    p_import.add_argument("--include-notifications", action="store_true",
                          help="Also restore notifications")
    p_import.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")
    p_import.set_defaults(func=cmd_import)

    # clear command
    p_clear = subparsers.add_parser("clear", help="Delete all of an owner's loft data")
    p_clear.add_argument("--owner", type=int, required=True, help="Owner (user) id")
    p_clear.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")
    p_clear.set_defaults(func=cmd_clear)

    # archive commands
    p_archive = subparsers.add_parser("archive", help="Archival and cleanup")
    archive_sub = p_archive.add_subparsers(dest="archive_command", required=True)

    p_run = archive_sub.add_parser("run", help="Run the full archive")
    p_run.add_argument("--executed-by", type=int, help="Operator user id")
    archive_sub.add_parser("notifications", help="Archive old read notifications")
    archive_sub.add_parser("push-notifications", help="Archive old read push notifications")
    archive_sub.add_parser("clean-logs", help="Purge old audit logs and spent reset codes")
    archive_sub.add_parser("stats", help="Show live/archive row counts")

    p_logs = archive_sub.add_parser("logs", help="Show archive run history")
    p_logs.add_argument("--limit", type=int, default=50)
    p_logs.add_argument("--offset", type=int, default=0)

    p_archived = archive_sub.add_parser("archived", help="List archived notifications")
    p_archived.add_argument("--owner", type=int)
    p_archived.add_argument("--limit", type=int, default=50)
    p_archived.add_argument("--offset", type=int, default=0)

    p_restore_n = archive_sub.add_parser("restore", help="Restore archived notifications")
    p_restore_n.add_argument("ids", type=int, nargs="+", help="Original notification ids")

    p_archive.set_defaults(func=cmd_archive)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
