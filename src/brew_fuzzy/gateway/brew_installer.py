import logging
import subprocess
from typing import Optional

from rich.console import Console
from rich.markup import escape

from ..domain.exceptions import InstallError

logger = logging.getLogger(__name__)

# Shell convention for "command not found"
COMMAND_NOT_FOUND_EXIT_CODE = 127


class BrewInstaller:
    """
    Runs `brew install` for the selected package, or only reports it in dry-run mode.
    選択されたパッケージに対して `brew install` を実行します（ドライランでは報告のみ）。
    """

    def __init__(self, brew_command: str = "brew", console: Optional[Console] = None):
        self.brew_command = brew_command
        self.console = console or Console()

    def install(self, package: str, dry_run: bool = False):
        """
        Installs ``package``, streaming brew's output to the terminal.
        ``package`` をインストールし、brew の出力をそのまま端末に流します。

        Args:
            package (str): The package name to install.
                           インストールするパッケージ名。
            dry_run (bool): If True, only prints what would be installed.
                            True の場合、インストール内容を表示するだけです。

        Raises:
            InstallError: If brew exits with a non-zero status or can't be started.
                          brew が非ゼロで終了した、または起動できない場合。
        """
        if dry_run:
            self.console.print(f"Would install: [cyan]{escape(package)}[/cyan]")
            logger.info(f"Dry run: skipped installing {package}")
            return

        self.console.print(f"Installing [cyan]{escape(package)}[/cyan]...")
        command = [self.brew_command, "install", package]
        logger.debug(f"Running: {' '.join(command)}")
        try:
            # No output capture: stdout and stderr are inherited so progress streams live
            result = subprocess.run(command)
        except OSError as e:
            logger.error(f"Could not start {self.brew_command}: {e}")
            raise InstallError(package, COMMAND_NOT_FOUND_EXIT_CODE) from e

        if result.returncode != 0:
            raise InstallError(package, result.returncode)
        logger.info(f"Installed {package}")
