from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

from volkeep.config import find_config, init_config, load_config, load_env_knobs
from volkeep.log import LOGS_FILE, read_logs, write_log
from volkeep.snapshot import Outcome, create_snapshot_store
from volkeep.stats import human_size, volume_stats


def _load_config_or_exit(console):
    try:
        return load_config()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)


@click.group()
@click.version_option(version="0.1.0")
def main():
    """volkeep: persist container volumes in a git repository."""
    load_env_knobs()


@main.command()
def init():
    """Create .volkeepconfig with defaults in the current directory."""
    if find_config():
        click.echo(".volkeepconfig already exists.")
        return
    config_path = init_config()
    click.echo(f"Created {config_path}")


@main.command()
@click.argument("volume_path", envvar="VOLKEEP_VOLUME_PATH")
@click.argument("snapshot_path", envvar="VOLKEEP_DATA_PATH")
@click.option("--owner", envvar="VOLKEEP_OWNER", default=None, help="UID:GID to apply after restore.")
def restore(volume_path, snapshot_path, owner):
    """Restore a volume from its snapshot in the repository.

    Example: volkeep restore /tmp/postgres-data data/postgresql --owner 999:999
    """
    console = Console()
    store = create_snapshot_store(_load_config_or_exit(console), console=console)
    try:
        outcome = store.restore(volume_path, snapshot_path, owner=owner or None)
    except (ValueError, RuntimeError, OSError) as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)

    write_log({
        "event": "restore",
        "volume": volume_path,
        "snapshot": snapshot_path,
        "result": outcome.value,
    })


@main.command()
@click.argument("volume_path", envvar="VOLKEEP_VOLUME_PATH")
@click.argument("snapshot_path", envvar="VOLKEEP_DATA_PATH")
@click.option("--container", envvar="VOLKEEP_CONTAINER", default=None,
              help="Container to stop before and restart after the backup.")
@click.option("--stop-command", envvar="VOLKEEP_STOP_COMMAND", default=None,
              help="Command used instead of 'docker stop' ({container} is substituted).")
def backup(volume_path, snapshot_path, container, stop_command):
    """Snapshot a volume into the repository as volume-data.tar.gz.

    Example: volkeep backup /tmp/postgres-data data/postgresql --container postgres
    """
    from volkeep.container import create_stopper

    console = Console()
    store = create_snapshot_store(_load_config_or_exit(console), console=console)
    try:
        stopper = create_stopper(stop_command) if container else None
        outcome = store.backup(volume_path, snapshot_path, container=container or None, stopper=stopper)
    except (ValueError, RuntimeError, OSError) as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)

    write_log({
        "event": "backup",
        "volume": volume_path,
        "snapshot": snapshot_path,
        "result": outcome.value,
        **store.last_backup,
    })


@main.command()
@click.option("-m", "--message", envvar="VOLKEEP_COMMIT_MESSAGE", default=None, help="Commit message.")
def commit(message):
    """Commit and push snapshot changes, resolving push races automatically."""
    from volkeep.vcs import Committer, GitRepo, PushState
    from volkeep.vcs.git import find_repo_root

    console = Console()
    config = _load_config_or_exit(console)
    try:
        repo = GitRepo(find_repo_root())
        result = Committer.from_config(repo, config, console=console).commit_and_push(message or None)
    except RuntimeError as e:
        console.print(f"[red]{e}[/red]")
        raise SystemExit(1)

    write_log({
        "event": "commit",
        "project": str(repo.root),
        "result": result.status.value,
        "attempts": result.attempts,
        "remediated": result.remediated,
    })
    if result.status == PushState.FAILED:
        raise SystemExit(1)


@main.command()
@click.argument("volume_path", envvar="VOLKEEP_VOLUME_PATH")
@click.argument("snapshot_path", envvar="VOLKEEP_DATA_PATH", required=False)
def stats(volume_path, snapshot_path):
    """Show size, file count and compression ratio for a volume."""
    console = Console()
    try:
        report = volume_stats(volume_path, snapshot_path)
    except FileNotFoundError as e:
        console.print(f"[yellow]{e}[/yellow]")
        raise SystemExit(1)

    table = Table(title="Volume Statistics", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Path", report["path"])
    table.add_row("Size (uncompressed)", human_size(report["size_bytes"]))
    table.add_row("Files", str(report["file_count"]))
    if report["compressed_size_bytes"] is not None:
        table.add_row("Backup size (compressed)", human_size(report["compressed_size_bytes"]))
    if report["ratio"] is not None:
        table.add_row("Compression ratio", f"{report['ratio']}%")
    console.print(table)


@main.command()
@click.option("-n", "--limit", default=20, help="Number of log entries to show.")
@click.option("--event", type=click.Choice(["restore", "backup", "commit"]), default=None,
              help="Only show one kind of event.")
def logs(limit, event):
    """Show the pipeline audit log."""
    console = Console()

    if not LOGS_FILE.exists():
        console.print("[dim]No logs yet. Run a backup first.[/dim]")
        return

    entries = read_logs(event)
    if not entries:
        console.print("[dim]No logs found.[/dim]")
        return

    table = Table(title="Pipeline Log")
    table.add_column("Time", style="dim")
    table.add_column("Event", style="bold")
    table.add_column("Path", max_width=50)
    table.add_column("Result", style="bold")

    for entry in entries[-limit:]:
        ts = entry.get("timestamp", "")
        if ts:
            try:
                ts = datetime.fromisoformat(ts).strftime("%m-%d %H:%M")
            except ValueError:
                pass
        result = entry.get("result", "")
        result_style = {
            Outcome.RESTORED.value: "[green]restored[/green]",
            Outcome.BACKED_UP.value: "[green]backed_up[/green]",
            "pushed": "[green]pushed[/green]",
            "failed": "[red]failed[/red]",
        }.get(result, result)
        table.add_row(
            ts,
            entry.get("event", ""),
            entry.get("snapshot") or entry.get("project", ""),
            result_style,
        )

    console.print(table)


if __name__ == "__main__":
    main()
