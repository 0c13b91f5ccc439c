"""
Command-line interface.
"""

import logging
import sys
import click
from pathlib import Path
from . import get_version
from .core.workflow import RidiLoader
from .core.ridi import BatchSummary, LibraryFinder, ProcessingState
from .core.ridi.scheduler import BatchProgress, EventKind, ProgressEvent
from .utils.config import Config
from .utils.errors import RidiLoaderError


def _setup_logging(verbose: bool) -> None:
    # Without --verbose, warnings go through logging's last-resort stderr handler
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


def _print_progress(progress: BatchProgress, event: ProgressEvent) -> None:
    """Render scheduler events as one line each."""
    name = event.book.display_name
    counter = f"[{progress.finished}/{progress.total}]"

    if event.kind is EventKind.STARTED:
        click.echo(f"  → Processing: {name}")
    elif event.kind is EventKind.RETRYING:
        click.secho(f"  ↻ Retrying {name}: {event.message}", fg="yellow")
    elif event.result.success:
        click.secho(f"  ✓ {counter} Saved: {event.result.output_path}", fg="green")
    else:
        click.secho(f"  ✗ {counter} Failed: {name} - {event.result.error}", fg="red")


def _print_summary(summary: BatchSummary) -> None:
    completed = summary.completed
    failed = summary.failed

    click.echo("\n--- Summary ---")
    click.secho(f"Success: {len(completed)}", fg="green" if completed else "white")
    if failed:
        click.secho(f"Failed:  {len(failed)}", fg="red")
        for result in failed:
            click.echo(f"  • {result.book_id}: {result.error}")
        click.echo("\nHint: Run again with '--resume' to retry failed books")


@click.group()
@click.version_option(version=get_version())
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    help="Config file (default: ~/.config/ridi-loader/config.toml)",
)
@click.pass_context
def cli(ctx, verbose, config_path):
    """ridi-loader - RIDI Books DRM removal tool

    Decrypts books downloaded by the RIDI app, using the device id of the
    device that downloaded them.
    """
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@cli.command()
@click.option("--all", "all_books", is_flag=True, help="Decrypt all books without asking")
@click.option("-d", "--device-id", help="RIDI device id")
@click.option("-u", "--user-idx", help="RIDI user index")
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Output directory (default: library directory)",
)
@click.option(
    "--library",
    type=click.Path(path_type=Path),
    help="RIDI library directory (default: auto-detect)",
)
@click.option("--force", is_flag=True, help="Re-decrypt books that are already decrypted")
@click.option("--resume", is_flag=True, help="Skip books completed in the previous run")
@click.option("--parallel", type=click.IntRange(min=1), help="Books decrypted at once (default: 4)")
@click.option("--max-retries", type=click.IntRange(min=1), help="Attempts per book (default: 3)")
@click.option("--validate", is_flag=True, help="Validate credentials with RIDI first")
@click.pass_context
def dedrm(ctx, all_books, device_id, user_idx, output, library, force, resume, parallel, max_retries, validate):
    """Remove DRM from RIDI books

    Without --all: show interactive menu to select books.
    With --all: decrypt all books.

    Examples:

        ridi-loader dedrm

        ridi-loader dedrm --all -d YOUR_DEVICE_ID -u YOUR_USER_IDX

        ridi-loader dedrm --all -o ~/Books/

        ridi-loader dedrm --all --resume

        ridi-loader dedrm --all --force --parallel 8
    """
    try:
        if force and resume:
            click.secho("✗ Error: --force and --resume cannot be used together", fg="red", err=True)
            sys.exit(1)

        config = Config(
            device_id=device_id,
            user_idx=user_idx,
            output_dir=output,
            library_path=library,
            parallel=parallel,
            max_retries=max_retries,
            force=force,
            config_path=ctx.obj.get("config_path"),
        )
        loader = RidiLoader(config)
        config.require_credentials()

        if validate:
            click.echo("Validating credentials...")
            loader.validate_credentials()
            click.secho("✓ Credentials valid", fg="green")

        books = loader.find_books()
        state = loader.load_state(resume)
        todo = loader.select(books, state, resume=resume)

        if not todo:
            click.secho("✓ All books already decrypted. Use --force to re-decrypt.", fg="green")
            return

        if not all_books:
            import questionary

            choices = [
                questionary.Choice(
                    title=f"{book.display_name} [{book.format.value.upper()}, {book.drm_version.value}]",
                    value=book,
                )
                for book in todo
            ]

            todo = questionary.checkbox(
                "Select books to decrypt (Space: select/deselect, Enter: confirm):",
                choices=choices,
            ).ask()

            if not todo:
                click.echo("No books selected.")
                return

        click.echo(f"\nFound {len(todo)} book(s) to process\n")
        summary = loader.process_books(todo, state=state, on_progress=_print_progress)
        _print_summary(summary)

        if summary.failed:
            sys.exit(1)

    except KeyboardInterrupt:
        click.secho(
            "\nOperation cancelled by user. Run with '--resume' to continue.", fg="yellow", err=True
        )
        sys.exit(1)
    except RidiLoaderError as e:
        click.secho(f"\n✗ Error: {e}", fg="red", err=True)
        sys.exit(1)
    except Exception as e:
        click.secho(f"\n✗ Unexpected error: {e}", fg="red", err=True)
        sys.exit(1)


@cli.command("list")
@click.option(
    "--library",
    type=click.Path(path_type=Path),
    help="RIDI library directory (default: auto-detect)",
)
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Output directory used to detect decrypted books",
)
@click.pass_context
def list_books(ctx, library, output):
    """List all books in the RIDI library

    Examples:

        ridi-loader list

        ridi-loader list --library /path/to/Ridibooks/library
    """
    try:
        config = Config(library_path=library, output_dir=output, config_path=ctx.obj.get("config_path"))
        books = RidiLoader(config).find_books()

        click.echo(f"\nFound {len(books)} book(s) in RIDI library:\n")
        click.echo(f"{'#':<4} {'Book ID':<24} {'Format':<7} {'DRM':<5} {'Size':<10} Status")
        click.echo("-" * 70)

        for i, book in enumerate(books, 1):
            if book.is_already_decrypted(config.output_dir, config.library_path):
                status = click.style("Decrypted", fg="green")
            else:
                status = click.style("Protected", fg="yellow")
            click.echo(
                f"{i:<4} {book.id:<24} {book.format.value.upper():<7} "
                f"{book.drm_version.value:<5} {book.format_file_size():<10} {status}"
            )

    except RidiLoaderError as e:
        click.secho(f"\n✗ Error: {e}", fg="red", err=True)
        sys.exit(1)
    except Exception as e:
        click.secho(f"\n✗ Unexpected error: {e}", fg="red", err=True)
        sys.exit(1)


@cli.command()
@click.option("-d", "--device-id", help="RIDI device id")
@click.option("-u", "--user-idx", help="RIDI user index")
@click.pass_context
def validate(ctx, device_id, user_idx):
    """Validate RIDI credentials

    Examples:

        ridi-loader validate -d YOUR_DEVICE_ID -u YOUR_USER_IDX
    """
    try:
        config = Config(device_id=device_id, user_idx=user_idx, config_path=ctx.obj.get("config_path"))
        click.echo("Validating credentials with RIDI...")
        RidiLoader(config).validate_credentials()
        click.secho("✓ Credentials valid", fg="green", bold=True)
    except RidiLoaderError as e:
        click.secho(f"✗ Validation failed: {e}", fg="red", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    "--library",
    type=click.Path(path_type=Path),
    help="RIDI library directory to check",
)
@click.pass_context
def diagnose(ctx, library):
    """Display library locations and setup information

    Examples:

        ridi-loader diagnose
    """
    try:
        config = Config(library_path=library, config_path=ctx.obj.get("config_path"))

        click.echo("=== ridi-loader Diagnostics ===\n")
        click.echo(f"Version: {get_version()}")
        click.echo(f"Config file: {config.config_path}" + ("" if config.config_path.exists() else " (missing)"))
        click.echo(f"State file: {config.state_path}" + ("" if config.state_path.exists() else " (missing)"))

        if config.device_id:
            click.secho("Device ID: configured ✓", fg="green")
        else:
            click.secho("Device ID: not configured", fg="yellow")
        if config.user_idx:
            click.secho("User index: configured ✓", fg="green")
        else:
            click.secho("User index: not configured", fg="yellow")

        finder = LibraryFinder(config.paths)
        locations = finder.find_library_locations(config.library_path)

        click.echo("\nLibrary locations:")
        if not locations:
            click.secho("  No RIDI library found. Use --library to point at it.", fg="yellow")
        for loc in locations:
            color = "green" if loc.confidence >= 0.7 else "yellow"
            click.secho(
                f"  {loc.confidence:>4.0%}  {loc.path}  ({loc.book_count} book(s), {loc.source.value})",
                fg=color,
            )

    except RidiLoaderError as e:
        click.secho(f"✗ Error: {e}", fg="red", err=True)
        sys.exit(1)


@cli.group()
def state():
    """Processing state management commands"""
    pass


@state.command("show")
@click.pass_context
def state_show(ctx):
    """Show the saved processing state"""
    try:
        config = Config(config_path=ctx.obj.get("config_path"))
        saved = ProcessingState.load(config.state_path)

        click.echo(f"State file: {config.state_path}")
        click.secho(f"Completed: {len(saved.completed)}", fg="green")
        click.secho(f"Failed:    {len(saved.failed)}", fg="red" if saved.failed else "white")
        for book_id, message in sorted(saved.failed.items()):
            click.echo(f"  • {book_id}: {message}")
        if saved.in_progress:
            click.secho(f"Interrupted: {', '.join(sorted(saved.in_progress))}", fg="yellow")
    except RidiLoaderError as e:
        click.secho(f"✗ Error: {e}", fg="red", err=True)
        sys.exit(1)


@state.command("clear")
@click.confirmation_option(prompt="Are you sure you want to clear the processing state?")
@click.pass_context
def state_clear(ctx):
    """Delete the saved processing state"""
    try:
        config = Config(config_path=ctx.obj.get("config_path"))
        if config.state_path.exists():
            config.state_path.unlink()
            click.secho("✓ Processing state cleared", fg="green", bold=True)
        else:
            click.echo("No processing state to clear")
    except (RidiLoaderError, OSError) as e:
        click.secho(f"✗ Error: {e}", fg="red", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
