import json
from pathlib import Path
import logging
import os
import time
from typing import Optional

from ..domain.cache_snapshot import CacheSnapshot
from ..domain.exceptions import CacheWriteError

logger = logging.getLogger(__name__)

# Temp files older than this are from interrupted saves
STALE_TEMP_FILE_AGE_SECONDS = 3600


class CacheStorage:
    """
    Handles reading and writing the package snapshot to disk.
    Uses JSON for serialization and an atomic rename for writes.
    パッケージスナップショットのディスクへの読み書きを処理します。
    シリアライズには JSON を、書き込みにはアトミックなリネームを使用します。
    """

    def __init__(self, cache_file: Path):
        """
        Initializes the CacheStorage.
        CacheStorage を初期化します。

        Args:
            cache_file (Path): Absolute path of the snapshot file (cache.json).
                               The parent directory is created on first save.
                               スナップショットファイル（cache.json）の絶対パス。
                               親ディレクトリは最初の保存時に作成されます。
        """
        self.cache_file = cache_file
        self.cache_dir = cache_file.parent
        logger.debug(f"Cache file set to: {self.cache_file}")

    def _ensure_cache_dir_exists(self):
        """Ensures the cache directory exists."""
        if not self.cache_dir.exists():
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created cache directory: {self.cache_dir}")

    def _remove_stale_temp_files(self):
        """
        Deletes temp files left behind by runs that exited mid-save.
        保存途中で終了した実行が残した一時ファイルを削除します。
        """
        cutoff = time.time() - STALE_TEMP_FILE_AGE_SECONDS
        try:
            temp_files = list(self.cache_dir.glob(f"{self.cache_file.stem}.*.tmp"))
        except OSError as e:
            logger.debug(f"Could not list {self.cache_dir}: {e}")
            return
        for temp_file in temp_files:
            try:
                # Recent ones may belong to a concurrent writer
                if temp_file.stat().st_mtime < cutoff:
                    temp_file.unlink()
                    logger.debug(f"Removed stale temporary file {temp_file}")
            except OSError as e:
                logger.debug(f"Could not remove temporary file {temp_file}: {e}")

    def load_snapshot(self) -> Optional[CacheSnapshot]:
        """
        Loads the cached snapshot from the cache file.
        キャッシュファイルからスナップショットを読み込みます。

        Returns:
            Optional[CacheSnapshot]:
                The snapshot, or None if the cache file doesn't exist, can't be read
                or doesn't contain a valid snapshot.
                スナップショット。キャッシュファイルが存在しない、読み込めない、
                または有効なスナップショットを含まない場合は None。
        """
        if not self.cache_file.is_file():
            logger.info("Cache file not found.")
            return None

        try:
            with self.cache_file.open('r', encoding='utf-8') as f:
                data = json.load(f)
            snapshot = CacheSnapshot.from_dict(data)
        except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
            logger.debug(f"Cache file {self.cache_file} is corrupt: {e}. Ignoring cache.")
            return None
        except OSError as e:
            logger.debug(f"Failed to read cache file {self.cache_file}: {e}. Ignoring cache.")
            return None

        logger.info(f"Loaded {len(snapshot.packages)} packages from {self.cache_file}")
        return snapshot

    def save_snapshot(self, snapshot: CacheSnapshot):
        """
        Saves the snapshot to the cache file.
        スナップショットをキャッシュファイルに保存します。

        Args:
            snapshot (CacheSnapshot): The snapshot to persist.
                                      保存するスナップショット。

        Raises:
            CacheWriteError: If the directory can't be created or the file can't be written.
                             ディレクトリを作成できない、またはファイルを書き込めない場合。
        """
        temp_file_path = self.cache_file.with_suffix(f".{os.getpid()}.tmp")
        try:
            self._ensure_cache_dir_exists()
            # Write to a temporary file first, then rename to make the save atomic
            # 最初に一時ファイルに書き込み、次に名前を変更して保存をアトミックにします
            with temp_file_path.open('w', encoding='utf-8') as f:
                json.dump(snapshot.to_dict(), f, indent=2)
            os.replace(temp_file_path, self.cache_file)
            logger.info(f"Saved {len(snapshot.packages)} packages to {self.cache_file}")
        except OSError as e:
            logger.debug(f"Failed to save cache to {self.cache_file}: {e}")
            if temp_file_path.exists():
                try:
                    temp_file_path.unlink()
                except OSError:
                    logger.debug(f"Could not remove temporary file {temp_file_path}")
            raise CacheWriteError(f"Failed to write cache file {self.cache_file}: {e}") from e
        self._remove_stale_temp_files()
