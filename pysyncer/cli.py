"""CLI interface for pysyncer."""

import logging
from pathlib import Path
from typing import Any, Callable, Optional

import click

from .cli_progress import SyncProgressDisplay
from .config import config
from .exceptions import SyncerConfigError, SyncerError
from .output import OutputFormatter
from .providers import ProviderRegistry, build_registry
from .sync import (
    JsonStateStore,
    LocalFileStore,
    SnapshotBuilder,
    SyncEngine,
    SyncOperation,
    SyncProgressTracker,
    get_tree_id,
    summarize_plan,
)
from .utils import MAX_RETRIES, format_size, format_timestamp


def tree_options(func: Callable) -> Callable:
    """Options shared by every command that works on a local tree."""
    func = click.option(
        "--exclude-dot-files",
        is_flag=True,
        help="Skip files and folders whose name starts with a dot",
    )(func)
    func = click.option(
        "--ignore",
        "-i",
        multiple=True,
        help="Glob pattern to skip (repeatable), e.g. -i '*.tmp' -i 'cache/*'",
    )(func)
    func = click.option(
        "--target",
        type=click.Path(file_okay=False),
        default=None,
        help="Target directory for the folder provider",
    )(func)
    func = click.option(
        "--name",
        "-n",
        default=None,
        help="Name of the tree (defaults to the directory name)",
    )(func)
    func = click.argument(
        "path", type=click.Path(exists=True, file_okay=False, path_type=Path)
    )(func)
    return func


def _build_registry(target: Optional[str]) -> ProviderRegistry:
    return build_registry(config, folder_root=Path(target) if target else None)


def _build_engine(
    ctx: Any,
    path: Path,
    name: Optional[str],
    target: Optional[str],
    ignore: tuple,
    exclude_dot_files: bool,
    workers: Optional[int] = None,
    max_retries: Optional[int] = None,
    progress: Optional[SyncProgressTracker] = None,
) -> SyncEngine:
    """Wire a SyncEngine from CLI options and config."""
    provider_id = ctx.obj["provider"] or config.active_provider
    registry = _build_registry(target)
    provider = registry.get(provider_id)
    if provider is None and provider_id == "folder":
        raise SyncerConfigError(
            "Folder provider needs --target or providers.folder.root in the config"
        )
    if provider is None:
        known = ", ".join(registry.options()) or "none"
        raise SyncerConfigError(f"Unknown provider '{provider_id}' (known: {known})")

    token = ctx.obj["token"] or config.get_token(provider_id)
    file_store = LocalFileStore(
        path, ignore_patterns=list(ignore), exclude_dot_files=exclude_dot_files
    )
    state_store = JsonStateStore(config.get_state_file(path))

    return SyncEngine(
        file_store=file_store,
        provider=provider,
        state_store=state_store,
        credentials=token,
        tree_name=name,
        concurrency=workers if workers is not None else config.max_concurrent_uploads,
        max_retries=max_retries if max_retries is not None else config.max_retries,
        progress=progress,
    )


def _close_provider(engine: Optional[SyncEngine]) -> None:
    if engine is not None and engine.provider is not None:
        engine.provider.close()


def _operation_to_dict(operation: SyncOperation) -> dict:
    return {
        "id": operation.id,
        "type": operation.type.value,
        "path": operation.path,
        "status": operation.status.value,
        "error": operation.last_error,
    }


@click.group()
@click.option(
    "--token", "-t", envvar="PYSYNCER_TOKEN", help="Provider credentials (OAuth token)"
)
@click.option("--provider", "-p", default=None, help="Provider id (yandex, folder)")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option(package_name="pysyncer")
@click.pass_context
def main(
    ctx: Any,
    token: Optional[str],
    provider: Optional[str],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """pysyncer - push a local folder to cloud storage, only what changed."""
    ctx.ensure_object(dict)
    ctx.obj["token"] = token
    ctx.obj["provider"] = provider
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("pysyncer").setLevel(logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option(
    "--token",
    prompt="Enter your OAuth token",
    hide_input=True,
    help="OAuth token to store",
)
@click.pass_context
def init(ctx: Any, token: str) -> None:
    """Verify and store provider credentials."""
    out: OutputFormatter = ctx.obj["out"]
    provider_id = ctx.obj["provider"] or config.active_provider
    provider = _build_registry(None).get(provider_id)

    if provider is None:
        out.error(f"Unknown provider '{provider_id}'")
        ctx.exit(1)
        return

    out.info(f"Checking connection to {provider.name}...")
    result = provider.check_connection(token)
    provider.close()
    if result.ok:
        out.success("Token is valid")
    else:
        out.warning(f"Connection check failed: {result.message}")
        if not click.confirm("Save token anyway?", default=False):
            out.info("Configuration cancelled")
            ctx.exit(1)
            return

    try:
        config.save_token(token, provider_id)
    except SyncerError as e:
        out.error(str(e))
        ctx.exit(1)
        return
    out.success(f"Configuration saved successfully to {config.get_config_path()}")


@main.command()
@click.option("--target", type=click.Path(file_okay=False), default=None)
@click.option("--use", "use_provider", default=None, help="Make PROVIDER the default")
@click.pass_context
def providers(ctx: Any, target: Optional[str], use_provider: Optional[str]) -> None:
    """List available storage providers, or select the default one."""
    out: OutputFormatter = ctx.obj["out"]
    options = _build_registry(target).options()

    if use_provider is not None:
        if use_provider not in options and use_provider != "folder":
            out.error(f"Unknown provider '{use_provider}'")
            ctx.exit(1)
            return
        try:
            config.set_active_provider(use_provider)
            config.save()
        except SyncerError as e:
            out.error(str(e))
            ctx.exit(1)
            return
        out.success(f"Default provider set to {use_provider}")
        return

    active = ctx.obj["provider"] or config.active_provider
    if out.json_output:
        out.output_json({"active": active, "providers": options})
        return

    for provider_id, name in options.items():
        marker = "*" if provider_id == active else " "
        out.print(f"{marker} {provider_id:<8} {name}")


@main.command()
@tree_options
@click.pass_context
def status(
    ctx: Any,
    path: Path,
    name: Optional[str],
    target: Optional[str],
    ignore: tuple,
    exclude_dot_files: bool,
) -> None:
    """Show connection and sync state for PATH."""
    out: OutputFormatter = ctx.obj["out"]
    engine: Optional[SyncEngine] = None
    try:
        engine = _build_engine(ctx, path, name, target, ignore, exclude_dot_files)
        connection = engine.check_connection()
        info = engine.status()
    except SyncerError as e:
        out.error(str(e))
        ctx.exit(1)
        return
    finally:
        _close_provider(engine)

    if out.json_output:
        out.output_json(
            {
                "treeId": info.tree_id,
                "provider": engine.provider.id if engine.provider else None,
                "connected": connection.ok,
                "connectionError": connection.message,
                "baselineFiles": info.baseline_files,
                "pendingTotal": info.pending_total,
                "pendingRemaining": info.pending_remaining,
                "pendingFailed": info.pending_failed,
                "lastSuccessfulSyncAt": info.last_successful_sync_at,
            }
        )
    else:
        provider_name = engine.provider.name if engine.provider else "none"
        if connection.ok:
            out.success(f"Connected to {provider_name}")
        else:
            out.warning(f"Cannot reach {provider_name}: {connection.message}")
        out.info(f"Tree: {engine.tree_name} ({info.tree_id})")
        out.info(f"Files in last sync: {info.baseline_files}")
        out.info(f"Last sync: {format_timestamp(info.last_successful_sync_at)}")
        if info.pending_remaining:
            out.warning(
                f"Interrupted sync: {info.pending_remaining} of "
                f"{info.pending_total} operation(s) left "
                f"({info.pending_failed} failed)"
            )

    if not connection.ok:
        ctx.exit(1)


@main.command()
@tree_options
@click.pass_context
def scan(
    ctx: Any,
    path: Path,
    name: Optional[str],
    target: Optional[str],
    ignore: tuple,
    exclude_dot_files: bool,
) -> None:
    """Hash every file under PATH and report what was found."""
    out: OutputFormatter = ctx.obj["out"]
    file_store = LocalFileStore(
        path, ignore_patterns=list(ignore), exclude_dot_files=exclude_dot_files
    )
    tree_name = name or path.resolve().name
    snapshot = SnapshotBuilder(file_store, get_tree_id(tree_name, path)).build()

    if out.json_output:
        out.output_json(snapshot.to_dict())
        return

    out.info(f"Tree: {tree_name} ({snapshot.tree_id})")
    out.success(
        f"Found {snapshot.file_count} file(s), {format_size(snapshot.total_size)}"
    )


@main.command()
@tree_options
@click.pass_context
def plan(
    ctx: Any,
    path: Path,
    name: Optional[str],
    target: Optional[str],
    ignore: tuple,
    exclude_dot_files: bool,
) -> None:
    """Show what a sync of PATH would do (dry run)."""
    out: OutputFormatter = ctx.obj["out"]
    engine: Optional[SyncEngine] = None
    try:
        engine = _build_engine(ctx, path, name, target, ignore, exclude_dot_files)
        sync_plan = engine.plan()
    except SyncerError as e:
        out.error(str(e))
        ctx.exit(1)
        return
    finally:
        _close_provider(engine)

    if out.json_output:
        out.output_json(
            {
                "remoteInitialized": sync_plan.remote_initialized,
                "pending": [_operation_to_dict(op) for op in sync_plan.pending],
                "operations": [_operation_to_dict(op) for op in sync_plan.operations],
            }
        )
        return

    if sync_plan.pending:
        out.warning(
            f"{len(sync_plan.pending)} operation(s) from an interrupted sync "
            "will run first"
        )
    if not sync_plan.remote_initialized:
        out.info("Remote has never been synced: every file will be uploaded")

    stats = summarize_plan(sync_plan.operations)
    if stats["total"] == 0:
        out.success("No changes needed - everything is in sync!")
        return

    out.info("Sync plan:")
    if stats["uploads"] > 0:
        out.info(f"  ↑ Upload: {stats['uploads']} file(s)")
    if stats["deletes"] > 0:
        out.info(f"  ✗ Delete remote: {stats['deletes']} file(s)")
    out.print("")
    for operation in sync_plan.operations:
        symbol = "↑" if operation.type.value == "upload" else "✗"
        out.info(f"  {symbol} {operation.path}")


@main.command()
@tree_options
@click.option(
    "--workers",
    "-w",
    type=click.IntRange(1, 8),
    default=None,
    help="Number of parallel uploads (1-8, default from config)",
)
@click.option(
    "--max-retries",
    type=click.IntRange(0, MAX_RETRIES),
    default=None,
    help="Retries for rate limits and temporary errors (default from config)",
)
@click.option("--no-progress", is_flag=True, help="Disable progress display")
@click.pass_context
def sync(
    ctx: Any,
    path: Path,
    name: Optional[str],
    target: Optional[str],
    ignore: tuple,
    exclude_dot_files: bool,
    workers: Optional[int],
    max_retries: Optional[int],
    no_progress: bool,
) -> None:
    """Push changes under PATH to the active provider.

    An interrupted sync is resumed first: operations that already finished
    are not repeated.

    Examples:
        pysyncer sync ~/notes
        pysyncer -p folder sync ~/notes --target /mnt/backup/notes
        pysyncer sync ~/notes -w 8 -i '*.tmp'
    """
    out: OutputFormatter = ctx.obj["out"]
    show_progress = not (no_progress or out.quiet or out.json_output)
    display = SyncProgressDisplay() if show_progress else None
    engine: Optional[SyncEngine] = None

    try:
        engine = _build_engine(
            ctx,
            path,
            name,
            target,
            ignore,
            exclude_dot_files,
            workers=workers,
            max_retries=max_retries,
            progress=display.create_tracker() if display else None,
        )
        if display is not None:
            with display:
                result = engine.sync()
        else:
            result = engine.sync()
    except SyncerError as e:
        if out.json_output:
            out.output_json({"success": False, "error": str(e)})
        out.error(str(e))
        ctx.exit(1)
        return
    finally:
        _close_provider(engine)

    if out.json_output:
        out.output_json(
            {
                "success": True,
                "uploads": result.uploads,
                "deletes": result.deletes,
                "resumed": result.resumed,
                "remoteInitialized": result.remote_initialized,
                "lastSuccessfulSyncAt": result.last_successful_sync_at,
            }
        )
        return

    out.success("Sync complete!")
    if result.resumed:
        out.info(f"  Resumed: {result.resumed} operation(s)")
    if result.uploads or result.deletes:
        out.info(f"  Uploaded: {result.uploads}")
        out.info(f"  Deleted remotely: {result.deletes}")
    elif not result.resumed:
        out.info("No changes needed - everything is in sync!")


@main.command()
@tree_options
@click.option(
    "--pending-only",
    is_flag=True,
    help="Only discard an interrupted sync, keep the baseline",
)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def reset(
    ctx: Any,
    path: Path,
    name: Optional[str],
    target: Optional[str],
    ignore: tuple,
    exclude_dot_files: bool,
    pending_only: bool,
    yes: bool,
) -> None:
    """Forget the stored sync state of PATH.

    Without --pending-only the next sync treats every file as changed
    relative to a freshly scanned baseline.
    """
    out: OutputFormatter = ctx.obj["out"]
    what = "the interrupted sync" if pending_only else "all sync state"
    if not yes and not click.confirm(f"Discard {what} for {path}?", default=False):
        out.info("Reset cancelled")
        ctx.exit(1)
        return

    file_store = LocalFileStore(
        path, ignore_patterns=list(ignore), exclude_dot_files=exclude_dot_files
    )
    state_store = JsonStateStore(config.get_state_file(path))
    engine = SyncEngine(file_store, None, state_store, tree_name=name)
    try:
        changed = engine.discard_pending() if pending_only else engine.reset()
    except (SyncerError, OSError) as e:
        out.error(str(e))
        ctx.exit(1)
        return

    if changed:
        out.success(f"Discarded {what}")
    else:
        out.info("Nothing to reset")


if __name__ == "__main__":
    main()
