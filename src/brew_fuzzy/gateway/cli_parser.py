import typer
from typing_extensions import Annotated
import logging
from typing import Optional

from .. import __version__
from ..controller.cli_controller import CliController

# Basic logger setup. WARNING by default so log lines don't draw over the fzf screen.
logging.basicConfig(level=logging.WARNING, format='[%(levelname)s] %(message)s')
logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Brew Fuzzy Install - Lightning-fast TUI for Homebrew package search and installation.",
    add_completion=False,
)

EPILOG = (
    "Controls: type to search (fuzzy matching), ↑/↓ to navigate, TAB toggles the preview pane, "
    "ENTER installs the selected package, ESC cancels.\n\n"
    "Cache location: ~/.cache/brew-fuzzy/"
)


def _version_callback(value: bool):
    if value:
        typer.echo(f"brew-fuzzy {__version__}")
        raise typer.Exit()


# --- Commands ---

@app.command(epilog=EPILOG, context_settings={"help_option_names": ["-h", "--help"]})
def run(
    refresh: Annotated[bool, typer.Option("--refresh", help="Refresh the package cache and exit.")] = False,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Test mode: print the package instead of installing it.")] = False,
    preview_colors: Annotated[bool, typer.Option("--preview-colors", help="Launch with a colorized preview and theme.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose (debug) logging.")] = False,
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=_version_callback, is_eager=True, help="Show the version and exit.")
    ] = None,
):
    """Launch the fuzzy finder over all Homebrew formulae and casks, then install the selection."""
    if verbose:
        logging.getLogger("brew_fuzzy").setLevel(logging.DEBUG)
        logger.debug("Verbose mode enabled.")

    controller = CliController()
    if refresh:
        controller.refresh()
        return
    controller.run(dry_run=dry_run, preview_colors=preview_colors)


# --- Entry point for CLI ---
def main():
    app()


if __name__ == "__main__":
    main()
