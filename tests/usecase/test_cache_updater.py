import pytest
from pathlib import Path
import datetime
import logging
import subprocess
import threading
from unittest.mock import MagicMock

from brew_fuzzy.domain.app_config import AppConfig
from brew_fuzzy.domain.cache_snapshot import CacheSnapshot, EPOCH
from brew_fuzzy.domain.exceptions import CacheWriteError, SourceQueryError
from brew_fuzzy.domain.package_category import PackageCategory
from brew_fuzzy.gateway.brew_source import BrewSource
from brew_fuzzy.gateway.cache_storage import CacheStorage
from brew_fuzzy.usecase.cache_updater import CacheUpdater

# Use a fixed timestamp for consistency in tests
# テストの一貫性のために固定タイムスタンプを使用します
NOW = datetime.datetime(2024, 6, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)
BREW_UPDATED = NOW - datetime.timedelta(hours=3)

FORMULAE = ["git", "wget"]
CASKS = ["firefox", "git"]


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig.for_cache_dir(tmp_path / "brew-fuzzy")


@pytest.fixture
def mock_source() -> MagicMock:
    source = MagicMock(spec=BrewSource)
    source.list_packages.side_effect = lambda category: {
        PackageCategory.FORMULA: list(FORMULAE),
        PackageCategory.CASK: list(CASKS),
    }[category]
    source.get_update_marker.return_value = BREW_UPDATED
    return source


@pytest.fixture
def cache_storage(config: AppConfig) -> CacheStorage:
    return CacheStorage(config.cache_file)


@pytest.fixture
def cache_updater(config: AppConfig, mock_source: MagicMock, cache_storage: CacheStorage) -> CacheUpdater:
    return CacheUpdater(config, source=mock_source, cache_storage=cache_storage, clock=lambda: NOW)


def save_snapshot_aged(storage: CacheStorage, age: datetime.timedelta, packages=("old-pkg",), brew_update=BREW_UPDATED) -> CacheSnapshot:
    snapshot = CacheSnapshot(packages=list(packages), last_updated=NOW - age, brew_update=brew_update)
    storage.save_snapshot(snapshot)
    return snapshot

# --- Test rebuild --- #

def test_rebuild_concatenates_formulae_then_casks(cache_updater: CacheUpdater, cache_storage: CacheStorage, config: AppConfig):
    """
    Tests that a rebuild persists formulae followed by casks, duplicates kept.
    再構築で formula の後に cask が保存され、重複が保持されることをテストします。
    """
    packages = cache_updater.rebuild()

    assert packages == ["git", "wget", "firefox", "git"]
    snapshot = cache_storage.load_snapshot()
    assert snapshot == CacheSnapshot(packages=packages, last_updated=NOW, brew_update=BREW_UPDATED)
    assert config.info_cache_dir.is_dir()

def test_rebuild_queries_categories_concurrently(config: AppConfig, cache_storage: CacheStorage):
    """Both category queries must be in flight at the same time."""
    barrier = threading.Barrier(2, timeout=5)
    source = MagicMock(spec=BrewSource)

    def list_packages(category):
        barrier.wait() # Raises BrokenBarrierError if the queries ran one after the other
        return [category.value]

    source.list_packages.side_effect = list_packages
    source.get_update_marker.return_value = EPOCH
    updater = CacheUpdater(config, source=source, cache_storage=cache_storage, clock=lambda: NOW)

    assert updater.rebuild() == ["formula", "cask"]

def test_rebuild_empty_upstream(cache_updater: CacheUpdater, mock_source: MagicMock, cache_storage: CacheStorage):
    mock_source.list_packages.side_effect = None
    mock_source.list_packages.return_value = []

    assert cache_updater.rebuild() == []
    assert cache_storage.load_snapshot().packages == []

@pytest.mark.parametrize("failing", [PackageCategory.FORMULA, PackageCategory.CASK])
def test_rebuild_failure_keeps_previous_snapshot(cache_updater: CacheUpdater, mock_source: MagicMock, cache_storage: CacheStorage, failing):
    """
    Tests that a failing category query aborts the rebuild without touching the old snapshot.
    カテゴリの問い合わせが失敗した場合、古いスナップショットに触れずに再構築が中止されることをテストします。
    """
    previous = save_snapshot_aged(cache_storage, datetime.timedelta(hours=30))

    def list_packages(category):
        if category is failing:
            raise SourceQueryError(category, subprocess.TimeoutExpired(cmd=["brew"], timeout=30))
        return ["pkg"]

    mock_source.list_packages.side_effect = list_packages

    with pytest.raises(SourceQueryError) as exc_info:
        cache_updater.rebuild()

    assert exc_info.value.category is failing
    assert cache_storage.load_snapshot() == previous

def test_rebuild_write_error_propagates(config: AppConfig, mock_source: MagicMock):
    storage = MagicMock(spec=CacheStorage)
    storage.save_snapshot.side_effect = CacheWriteError("read-only file system")
    updater = CacheUpdater(config, source=mock_source, cache_storage=storage, clock=lambda: NOW)

    with pytest.raises(CacheWriteError):
        updater.rebuild()

# --- Test get_packages --- #

def test_get_packages_fresh_hit_serves_cache(cache_updater: CacheUpdater, mock_source: MagicMock, cache_storage: CacheStorage, mocker):
    """
    Tests that a fresh snapshot is returned without querying brew synchronously,
    and that a background check is started.
    新しいスナップショットが brew への同期問い合わせなしで返され、
    バックグラウンドチェックが開始されることをテストします。
    """
    save_snapshot_aged(cache_storage, datetime.timedelta(hours=1), packages=["cached"])
    start_check = mocker.patch.object(cache_updater, "start_background_check")
    on_rebuild_start = MagicMock()

    assert cache_updater.get_packages(on_rebuild_start=on_rebuild_start) == ["cached"]

    mock_source.list_packages.assert_not_called()
    start_check.assert_called_once_with()
    on_rebuild_start.assert_not_called()

def test_get_packages_stale_rebuilds(cache_updater: CacheUpdater, mock_source: MagicMock, cache_storage: CacheStorage, mocker):
    """A snapshot 25 hours old with a 24 hour max age is rebuilt synchronously."""
    save_snapshot_aged(cache_storage, datetime.timedelta(hours=25))
    start_check = mocker.patch.object(cache_updater, "start_background_check")
    on_rebuild_start = MagicMock()

    assert cache_updater.get_packages(on_rebuild_start=on_rebuild_start) == ["git", "wget", "firefox", "git"]

    assert mock_source.list_packages.call_count == 2
    on_rebuild_start.assert_called_once_with()
    start_check.assert_not_called()
    assert cache_storage.load_snapshot().last_updated == NOW

def test_get_packages_exactly_max_age_is_stale(cache_updater: CacheUpdater, mock_source: MagicMock, cache_storage: CacheStorage):
    save_snapshot_aged(cache_storage, datetime.timedelta(hours=24))
    cache_updater.get_packages()
    assert mock_source.list_packages.call_count == 2

def test_get_packages_missing_cache_rebuilds(cache_updater: CacheUpdater, mock_source: MagicMock, cache_storage: CacheStorage):
    assert cache_storage.load_snapshot() is None
    assert cache_updater.get_packages() == ["git", "wget", "firefox", "git"]
    assert cache_storage.load_snapshot() is not None

def test_get_packages_corrupt_cache_rebuilds(cache_updater: CacheUpdater, config: AppConfig):
    config.cache_dir.mkdir(parents=True)
    config.cache_file.write_text("not json", encoding='utf-8')
    assert cache_updater.get_packages() == ["git", "wget", "firefox", "git"]

def test_get_packages_stale_failure_propagates(cache_updater: CacheUpdater, mock_source: MagicMock, cache_storage: CacheStorage):
    previous = save_snapshot_aged(cache_storage, datetime.timedelta(days=3))
    mock_source.list_packages.side_effect = SourceQueryError(PackageCategory.FORMULA, OSError("brew missing"))

    with pytest.raises(SourceQueryError):
        cache_updater.get_packages()
    assert cache_storage.load_snapshot() == previous

# --- Test refresh --- #

def test_refresh_rebuilds_even_when_fresh(cache_updater: CacheUpdater, mock_source: MagicMock, cache_storage: CacheStorage):
    """
    Tests that refresh always rebuilds, ignoring a fresh cache.
    refresh が新しいキャッシュを無視して常に再構築することをテストします。
    """
    save_snapshot_aged(cache_storage, datetime.timedelta(minutes=5), packages=["cached"])

    assert cache_updater.refresh() == ["git", "wget", "firefox", "git"]
    assert mock_source.list_packages.call_count == 2
    assert cache_storage.load_snapshot().packages == ["git", "wget", "firefox", "git"]

# --- Test check_for_upstream_update --- #

def test_background_check_rebuilds_when_brew_updated(cache_updater: CacheUpdater, mock_source: MagicMock, cache_storage: CacheStorage):
    save_snapshot_aged(cache_storage, datetime.timedelta(hours=1), brew_update=BREW_UPDATED - datetime.timedelta(days=1))

    assert cache_updater.check_for_upstream_update() is True
    assert cache_storage.load_snapshot().packages == ["git", "wget", "firefox", "git"]

@pytest.mark.parametrize("upstream", [EPOCH, BREW_UPDATED, BREW_UPDATED - datetime.timedelta(minutes=1)])
def test_background_check_skips_when_not_newer(cache_updater: CacheUpdater, mock_source: MagicMock, cache_storage: CacheStorage, upstream):
    """
    An unknown (epoch), equal or older upstream marker never triggers a rebuild.
    不明（エポック）、同じ、または古い上流マーカーでは再構築されません。
    """
    previous = save_snapshot_aged(cache_storage, datetime.timedelta(hours=1))
    mock_source.get_update_marker.return_value = upstream

    assert cache_updater.check_for_upstream_update() is False
    mock_source.list_packages.assert_not_called()
    assert cache_storage.load_snapshot() == previous

def test_background_check_without_cache_does_nothing(cache_updater: CacheUpdater, mock_source: MagicMock):
    assert cache_updater.check_for_upstream_update() is False
    mock_source.get_update_marker.assert_not_called()

def test_background_check_swallows_errors(cache_updater: CacheUpdater, mock_source: MagicMock, cache_storage: CacheStorage):
    previous = save_snapshot_aged(cache_storage, datetime.timedelta(hours=1), brew_update=EPOCH)
    mock_source.list_packages.side_effect = SourceQueryError(PackageCategory.CASK, OSError("network down"))

    assert cache_updater.check_for_upstream_update() is False
    assert cache_storage.load_snapshot() == previous

def test_background_check_swallows_unexpected_errors(cache_updater: CacheUpdater, mock_source: MagicMock, cache_storage: CacheStorage):
    save_snapshot_aged(cache_storage, datetime.timedelta(hours=1))
    mock_source.get_update_marker.side_effect = RuntimeError("unexpected")
    assert cache_updater.check_for_upstream_update() is False

def test_start_background_check_runs_detached(cache_updater: CacheUpdater, mocker):
    """The check runs on a daemon thread that the caller does not wait for."""
    started = threading.Event()
    release = threading.Event()

    def slow_check():
        started.set()
        release.wait(5)
        return False

    mocker.patch.object(cache_updater, "check_for_upstream_update", side_effect=slow_check)

    worker = cache_updater.start_background_check()

    assert worker.daemon is True
    assert started.wait(5)
    assert worker.is_alive() # Caller returned while the check is still running
    release.set()
    worker.join(5)
    assert not worker.is_alive()

def test_fresh_hit_background_refresh_updates_snapshot(cache_updater: CacheUpdater, cache_storage: CacheStorage):
    """
    End to end: the current call gets the cached list; the detached refresh rewrites the snapshot.
    エンドツーエンド: 現在の呼び出しはキャッシュ済み一覧を取得し、切り離された更新がスナップショットを書き換えます。
    """
    save_snapshot_aged(cache_storage, datetime.timedelta(hours=1), packages=["cached"], brew_update=EPOCH)

    worker_holder = {}
    real_start = cache_updater.start_background_check

    def capture_start():
        worker_holder["thread"] = real_start()
        return worker_holder["thread"]

    cache_updater.start_background_check = capture_start

    assert cache_updater.get_packages() == ["cached"]
    worker_holder["thread"].join(5)
    assert cache_storage.load_snapshot().packages == ["git", "wget", "firefox", "git"]

def join_refresh_threads():
    for thread in threading.enumerate():
        if thread.name == "brew-fuzzy-refresh":
            thread.join(5)

def test_background_query_timeout_logs_nothing_visible(config: AppConfig, cache_storage: CacheStorage, mocker, caplog):
    """
    A brew search timeout during the background refresh only shows up at debug level,
    so nothing is written over the fzf screen.
    バックグラウンド更新中の brew search のタイムアウトはデバッグレベルでのみ記録され、
    fzf の画面には何も書き込まれません。
    """
    save_snapshot_aged(cache_storage, datetime.timedelta(hours=1), packages=["cached"], brew_update=EPOCH)
    source = BrewSource()
    mocker.patch.object(source, "get_update_marker", return_value=NOW)
    mocker.patch(
        "brew_fuzzy.gateway.brew_source.subprocess.run",
        side_effect=subprocess.TimeoutExpired(cmd=["brew", "search"], timeout=30),
    )
    updater = CacheUpdater(config, source=source, cache_storage=cache_storage, clock=lambda: NOW)

    with caplog.at_level(logging.WARNING):
        assert updater.get_packages() == ["cached"]
        join_refresh_threads()

    assert [r for r in caplog.records if r.levelno >= logging.WARNING] == []
    assert cache_storage.load_snapshot().packages == ["cached"]

def test_background_save_failure_logs_nothing_visible(cache_updater: CacheUpdater, cache_storage: CacheStorage, mocker, caplog):
    save_snapshot_aged(cache_storage, datetime.timedelta(hours=1), packages=["cached"], brew_update=EPOCH)
    mocker.patch("brew_fuzzy.gateway.cache_storage.os.replace", side_effect=OSError("read-only file system"))

    with caplog.at_level(logging.WARNING):
        cache_updater.start_background_check().join(5)

    assert [r for r in caplog.records if r.levelno >= logging.WARNING] == []
