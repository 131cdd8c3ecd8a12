from typing import Optional

from .package_category import PackageCategory


class BrewFuzzyError(Exception):
    """Base class for all brew-fuzzy errors."""


class SourceQueryError(BrewFuzzyError):
    """
    Raised when listing packages of a category fails or times out.
    カテゴリのパッケージ一覧取得が失敗またはタイムアウトした場合に発生します。
    """

    def __init__(self, category: PackageCategory, cause: Exception):
        self.category = category
        self.cause = cause
        super().__init__(f"Failed to list {category.value} packages: {cause}")


class CacheWriteError(BrewFuzzyError):
    """Raised when the package snapshot cannot be persisted."""


class SelectorError(BrewFuzzyError):
    """
    Raised when the fuzzy finder exits abnormally (not a user cancel).
    ファジーファインダーが異常終了した場合（ユーザーによるキャンセル以外）に発生します。
    """

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        detail = f" (exit status {returncode})" if returncode is not None else ""
        if stderr:
            detail += f": {stderr.strip()}"
        super().__init__(f"{message}{detail}")


class InstallError(BrewFuzzyError):
    """Raised when `brew install` returns a non-zero exit status."""

    def __init__(self, package: str, returncode: int):
        self.package = package
        self.returncode = returncode
        super().__init__(f"Installing '{package}' failed with exit status {returncode}")
