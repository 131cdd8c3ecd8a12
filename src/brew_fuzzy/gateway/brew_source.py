from pathlib import Path
import datetime
import logging
import subprocess
from typing import List

from ..domain.cache_snapshot import EPOCH
from ..domain.exceptions import SourceQueryError
from ..domain.package_category import PackageCategory

logger = logging.getLogger(__name__)

DEFAULT_QUERY_TIMEOUT = 30.0


def parse_package_lines(output: str) -> List[str]:
    """
    Splits command output into package names, dropping blank lines.
    コマンド出力をパッケージ名に分割し、空行を取り除きます。
    """
    return [line.strip() for line in output.splitlines() if line.strip()]


class BrewSource:
    """
    Lists available packages by shelling out to Homebrew.
    Homebrew を呼び出して利用可能なパッケージを一覧表示します。
    """

    def __init__(self, brew_command: str = "brew", timeout: float = DEFAULT_QUERY_TIMEOUT):
        """
        Args:
            brew_command (str): Executable used for all queries.
                                すべての問い合わせに使う実行ファイル。
            timeout (float): Hard timeout in seconds for each query.
                             各問い合わせのタイムアウト（秒）。
        """
        self.brew_command = brew_command
        self.timeout = timeout

    def list_packages(self, category: PackageCategory) -> List[str]:
        """
        Returns the names of all packages in ``category``.
        ``category`` に含まれるすべてのパッケージ名を返します。

        Raises:
            SourceQueryError: If the query times out, exits non-zero or can't be started.
                              問い合わせがタイムアウト、非ゼロ終了、または起動できない場合。
        """
        command = [self.brew_command, "search", category.search_flag, "."]
        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=True,
            )
        except (subprocess.TimeoutExpired, subprocess.CalledProcessError, OSError) as e:
            logger.debug(f"Listing {category.value} packages failed: {e}")
            raise SourceQueryError(category, e) from e

        packages = parse_package_lines(result.stdout)
        logger.info(f"Found {len(packages)} {category.value} packages.")
        return packages

    def get_update_marker(self) -> datetime.datetime:
        """
        Returns the modification time of the Homebrew repository's FETCH_HEAD,
        i.e. the last time `brew update` fetched. EPOCH when it can't be determined.
        Homebrew リポジトリの FETCH_HEAD の更新日時（最後に `brew update` が
        フェッチした時刻）を返します。判定できない場合は EPOCH。
        """
        try:
            result = subprocess.run(
                [self.brew_command, "--repository"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=True,
            )
            repository = result.stdout.strip()
            if not repository:
                logger.debug("`brew --repository` printed nothing.")
                return EPOCH
            mtime = (Path(repository) / ".git" / "FETCH_HEAD").stat().st_mtime
        except (subprocess.TimeoutExpired, subprocess.CalledProcessError, OSError) as e:
            logger.debug(f"Could not determine Homebrew update time: {e}")
            return EPOCH
        return datetime.datetime.fromtimestamp(mtime, tz=datetime.timezone.utc)
