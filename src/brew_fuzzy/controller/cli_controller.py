from typing import Optional
import logging

from rich.console import Console
from rich.markup import escape
import typer # Typer needed for exit

from ..core import BrewFuzzy
from ..domain.exceptions import (
    BrewFuzzyError,
    CacheWriteError,
    InstallError,
    SelectorError,
    SourceQueryError,
)

logger = logging.getLogger(__name__)


class CliController:
    """
    Handles the logic for the CLI, interfacing with the BrewFuzzy facade.
    Reports failures to the user and turns them into a non-zero exit.
    CLI のロジックを処理し、BrewFuzzy ファサードとのインターフェースを提供します。
    失敗をユーザーに報告し、非ゼロの終了コードに変換します。
    """

    def __init__(self, app: Optional[BrewFuzzy] = None, console: Optional[Console] = None):
        self.console = console or Console()
        # Lazy initialization of the BrewFuzzy instance
        # BrewFuzzy インスタンスの遅延初期化
        self._app = app

    def _get_app(self) -> BrewFuzzy:
        if self._app is None:
            self._app = BrewFuzzy(console=self.console)
        return self._app

    def _fail(self, title: str, error: Exception):
        self.console.print(f"[bold red]{title}:[/bold red] {escape(str(error))}")
        raise typer.Exit(code=1)

    def refresh(self):
        """
        Rebuilds the package cache and confirms it.
        パッケージキャッシュを再構築し、完了を表示します。
        """
        app = self._get_app()
        try:
            with self.console.status("Refreshing package cache..."):
                packages = app.refresh()
        except BrewFuzzyError as e:
            self._fail("Failed to refresh cache", e)
        logger.info(f"Refreshed cache with {len(packages)} packages.")
        self.console.print("Cache refreshed successfully")

    def run(self, dry_run: bool = False, preview_colors: bool = False):
        """
        Loads the package list, lets the user pick one in fzf and installs it.
        パッケージ一覧を読み込み、fzf でユーザーに選択させ、インストールします。

        Args:
            dry_run (bool): Only report what would be installed.
                            インストール内容を報告するだけにします。
            preview_colors (bool): Colorize the preview pane and the fzf theme.
                                   プレビューペインと fzf テーマをカラー表示します。
        """
        app = self._get_app()

        status = self.console.status("Building package cache... (this may take a moment)")
        try:
            packages = app.get_packages(on_rebuild_start=status.start)
        except (SourceQueryError, CacheWriteError) as e:
            self._fail("Failed to get packages", e)
        finally:
            status.stop()

        try:
            selected = app.select(packages, use_colors=preview_colors)
        except SelectorError as e:
            self._fail("Failed to run fzf", e)

        if not selected:
            logger.debug("Nothing selected; exiting.")
            return

        try:
            app.install(selected, dry_run=dry_run)
        except InstallError as e:
            self._fail("Failed to install package", e)
