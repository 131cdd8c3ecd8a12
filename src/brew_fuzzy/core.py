from typing import Callable, List, Optional, Sequence
import logging

from rich.console import Console

from . import __version__
from .domain.app_config import AppConfig
from .gateway.brew_installer import BrewInstaller
from .gateway.brew_source import BrewSource
from .gateway.cache_storage import CacheStorage
from .gateway.fzf_selector import FzfSelector
from .usecase.cache_updater import CacheUpdater

logger = logging.getLogger(__name__)


class BrewFuzzy:
    """
    The main facade of brew-fuzzy.
    Wires the package cache, the fzf selector and the installer together.
    brew-fuzzy のメインファサードクラス。
    パッケージキャッシュ、fzf セレクター、インストーラーを結び付けます。
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        cache_updater: Optional[CacheUpdater] = None,
        selector: Optional[FzfSelector] = None,
        installer: Optional[BrewInstaller] = None,
        console: Optional[Console] = None,
    ):
        """
        Initializes the facade. Collaborators not given are built from ``config``.
        ファサードを初期化します。渡されなかった協調オブジェクトは ``config`` から構築されます。

        Args:
            config (Optional[AppConfig]): Settings. Defaults to AppConfig.from_environment().
                                          設定。デフォルトは AppConfig.from_environment()。
            cache_updater (Optional[CacheUpdater]): Cache orchestrator.
            selector (Optional[FzfSelector]): Interactive selector.
            installer (Optional[BrewInstaller]): Package installer.
            console (Optional[Console]): Console used for user-facing output.
        """
        self.config = config or AppConfig.from_environment()
        self.console = console or Console()
        self.cache_updater = cache_updater or CacheUpdater(
            self.config,
            source=BrewSource(self.config.brew_command, self.config.query_timeout),
            cache_storage=CacheStorage(self.config.cache_file),
        )
        self.selector = selector or FzfSelector(self.config)
        self.installer = installer or BrewInstaller(self.config.brew_command, console=self.console)
        logger.debug(f"brew-fuzzy v{__version__} initialized with cache dir {self.config.cache_dir}")

    def get_packages(self, on_rebuild_start: Optional[Callable[[], None]] = None) -> List[str]:
        """Returns the cached package list, rebuilding it first if it is missing or stale."""
        return self.cache_updater.get_packages(on_rebuild_start=on_rebuild_start)

    def refresh(self) -> List[str]:
        """Rebuilds the package cache unconditionally."""
        return self.cache_updater.refresh()

    def select(self, packages: Sequence[str], use_colors: bool = False) -> Optional[str]:
        """Returns the package picked in fzf, or None when the user cancelled."""
        return self.selector.select(packages, use_colors=use_colors)

    def install(self, package: str, dry_run: bool = False):
        """Installs ``package`` (or reports it in dry-run mode)."""
        self.installer.install(package, dry_run=dry_run)
