from concurrent.futures import ThreadPoolExecutor
import datetime
import logging
import threading
from typing import Callable, Dict, List, Optional

from ..domain.app_config import AppConfig
from ..domain.cache_snapshot import CacheSnapshot, EPOCH
from ..domain.package_category import PackageCategory
from ..gateway.brew_source import BrewSource
from ..gateway.cache_storage import CacheStorage

logger = logging.getLogger(__name__)

# Categories in the order they appear in the snapshot
CATEGORY_ORDER = (PackageCategory.FORMULA, PackageCategory.CASK)


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class CacheUpdater:
    """
    Manages the lifecycle of the package cache.
    Serves a fresh snapshot immediately, rebuilds a stale or missing one
    synchronously, and refreshes in the background when Homebrew itself
    has been updated since the snapshot was built.
    パッケージキャッシュのライフサイクルを管理します。
    新しいスナップショットは即座に返し、古いまたは存在しないものは同期的に再構築し、
    スナップショット作成後に Homebrew 自体が更新されていればバックグラウンドで更新します。
    """

    def __init__(
        self,
        config: AppConfig,
        source: Optional[BrewSource] = None,
        cache_storage: Optional[CacheStorage] = None,
        clock: Callable[[], datetime.datetime] = _utc_now,
    ):
        """
        Initializes the CacheUpdater.
        CacheUpdater を初期化します。

        Args:
            config (AppConfig): Application settings (paths, max age, timeout).
                                アプリケーション設定（パス、最大経過時間、タイムアウト）。
            source (Optional[BrewSource]): Package source. If None, a default one is created.
                                           パッケージソース。None の場合、デフォルトのものが作成されます。
            cache_storage (Optional[CacheStorage]): CacheStorage instance.
                                                    If None, a default one is created.
                                                    CacheStorage インスタンス。
                                                    None の場合、デフォルトのものが作成されます。
            clock (Callable[[], datetime.datetime]): Returns the current aware UTC time.
                                                     現在の UTC 時刻を返す関数。
        """
        self.config = config
        self.source = source or BrewSource(config.brew_command, config.query_timeout)
        self.cache_storage = cache_storage or CacheStorage(config.cache_file)
        self.clock = clock

    def is_fresh(self, snapshot: CacheSnapshot) -> bool:
        """True while the snapshot is younger than the configured max age."""
        return snapshot.age(self.clock()) < self.config.cache_max_age

    def get_packages(self, on_rebuild_start: Optional[Callable[[], None]] = None) -> List[str]:
        """
        Returns the package list, from cache when it is fresh enough.
        パッケージ一覧を返します。十分に新しい場合はキャッシュから返します。

        Args:
            on_rebuild_start (Optional[Callable[[], None]]):
                Called before a synchronous rebuild starts, e.g. to show progress.
                同期的な再構築の開始前に呼び出されます（進捗表示など）。

        Returns:
            List[str]: Package names, formulae first.
                       パッケージ名のリスト（formula が先）。

        Raises:
            SourceQueryError: If a rebuild was needed and a query failed.
            CacheWriteError: If a rebuild was needed and the snapshot couldn't be saved.
        """
        snapshot = self.cache_storage.load_snapshot()
        if snapshot is not None and self.is_fresh(snapshot):
            logger.info(f"Cache is fresh ({len(snapshot.packages)} packages).")
            self.start_background_check()
            return snapshot.packages

        if snapshot is None:
            logger.info("No usable cache found. Rebuilding.")
        else:
            logger.info(f"Cache is stale (last updated {snapshot.last_updated.isoformat()}). Rebuilding.")
        if on_rebuild_start is not None:
            on_rebuild_start()
        return self.rebuild()

    def refresh(self) -> List[str]:
        """Rebuilds the cache regardless of its current age."""
        logger.info("Forced cache refresh requested.")
        return self.rebuild()

    def _fetch_all(self) -> List[str]:
        # Both queries must finish before either result is used
        with ThreadPoolExecutor(max_workers=len(CATEGORY_ORDER), thread_name_prefix="brew-search") as pool:
            futures = {category: pool.submit(self.source.list_packages, category) for category in CATEGORY_ORDER}
        results: Dict[PackageCategory, List[str]] = {}
        for category in CATEGORY_ORDER:
            # .result() re-raises the SourceQueryError of a failed query
            results[category] = futures[category].result()
        packages: List[str] = []
        for category in CATEGORY_ORDER:
            packages.extend(results[category])
        return packages

    def rebuild(self) -> List[str]:
        """
        Queries Homebrew for both categories, persists a new snapshot and returns its packages.
        Nothing is written if any query fails; the previous snapshot stays in place.
        両カテゴリを Homebrew に問い合わせ、新しいスナップショットを保存してパッケージを返します。
        いずれかの問い合わせが失敗した場合は何も書き込まれず、以前のスナップショットが残ります。

        Raises:
            SourceQueryError: If either category query fails or times out.
                              いずれかのカテゴリの問い合わせが失敗またはタイムアウトした場合。
            CacheWriteError: If the snapshot can't be saved.
                             スナップショットを保存できない場合。
        """
        packages = self._fetch_all()
        snapshot = CacheSnapshot(
            packages=packages,
            last_updated=self.clock(),
            brew_update=self.source.get_update_marker(),
        )
        self.cache_storage.save_snapshot(snapshot)
        try:
            self.config.info_cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.debug(f"Could not create info cache directory {self.config.info_cache_dir}: {e}")
        logger.info(f"Cache rebuilt with {len(packages)} packages.")
        return packages

    def check_for_upstream_update(self) -> bool:
        """
        Rebuilds the cache if Homebrew was updated after the snapshot was built.
        Never raises; failures are logged and dropped.
        スナップショット作成後に Homebrew が更新されていればキャッシュを再構築します。
        例外は発生させず、失敗はログに記録して破棄します。

        Returns:
            bool: True if a rebuild completed.
                  再構築が完了した場合は True。
        """
        try:
            snapshot = self.cache_storage.load_snapshot()
            if snapshot is None:
                return False
            upstream = self.source.get_update_marker()
            if upstream == EPOCH or upstream <= snapshot.brew_update:
                logger.debug("Homebrew has not been updated since the cache was built.")
                return False
            logger.info(f"Homebrew updated at {upstream.isoformat()}. Refreshing cache in background.")
            self.rebuild()
            return True
        except Exception as e:
            logger.debug(f"Background cache refresh failed: {e}", exc_info=True)
            return False

    def start_background_check(self) -> threading.Thread:
        """
        Starts :meth:`check_for_upstream_update` on a daemon thread and returns it without waiting.
        :meth:`check_for_upstream_update` をデーモンスレッドで開始し、待たずに返します。
        """
        worker = threading.Thread(
            target=self.check_for_upstream_update,
            name="brew-fuzzy-refresh",
            daemon=True,
        )
        worker.start()
        return worker
