from dataclasses import dataclass
import datetime
import os
from pathlib import Path
from typing import Mapping, Optional

CACHE_DIR_PARTS = (".cache", "brew-fuzzy")
CACHE_FILE_NAME = "cache.json"
PREVIEW_SCRIPT_NAME = "preview.sh"
INFO_DIR_NAME = "info"


@dataclass(frozen=True)
class AppConfig:
    """
    Process-wide settings, read once at start-up.
    起動時に一度だけ読み込まれるプロセス全体の設定。

    Attributes:
        cache_dir (Path): Directory holding cache.json and preview.sh.
                          cache.json と preview.sh を保持するディレクトリ。
        info_cache_dir (Path): Directory holding per-package `brew info` output.
                               パッケージごとの `brew info` 出力を保持するディレクトリ。
        cache_max_age (datetime.timedelta): Age after which the package list is rebuilt synchronously.
                                            パッケージ一覧を同期的に再構築するまでの期間。
        info_max_age (datetime.timedelta): Freshness window for cached `brew info` output.
                                           キャッシュされた `brew info` 出力の有効期間。
        query_timeout (float): Timeout in seconds for `brew search` style queries.
                               `brew search` などの問い合わせのタイムアウト（秒）。
    """
    cache_dir: Path
    info_cache_dir: Path
    cache_max_age: datetime.timedelta = datetime.timedelta(hours=24)
    info_max_age: datetime.timedelta = datetime.timedelta(hours=1)
    query_timeout: float = 30.0
    brew_command: str = "brew"
    fzf_command: str = "fzf"

    @property
    def cache_file(self) -> Path:
        return self.cache_dir / CACHE_FILE_NAME

    @property
    def preview_script(self) -> Path:
        return self.cache_dir / PREVIEW_SCRIPT_NAME

    @classmethod
    def for_cache_dir(cls, cache_dir: Path, **overrides) -> "AppConfig":
        """Builds a config rooted at ``cache_dir`` with the info cache inside it."""
        return cls(cache_dir=cache_dir, info_cache_dir=cache_dir / INFO_DIR_NAME, **overrides)

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """
        Builds the default configuration from the user's home directory.
        ユーザーのホームディレクトリからデフォルト設定を構築します。

        Args:
            environ (Optional[Mapping[str, str]]): Environment to read. Defaults to os.environ.
                                                   読み込む環境変数。デフォルトは os.environ。
        """
        env = os.environ if environ is None else environ
        home = env.get("HOME")
        home_path = Path(home) if home else Path.home()
        return cls.for_cache_dir(home_path.joinpath(*CACHE_DIR_PARTS))
