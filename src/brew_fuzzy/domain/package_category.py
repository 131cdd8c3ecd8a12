from enum import Enum


class PackageCategory(Enum):
    """
    The two package groupings Homebrew can list independently.
    Homebrew が個別に一覧表示できる 2 つのパッケージ区分。
    """
    FORMULA = "formula"
    CASK = "cask"

    @property
    def search_flag(self) -> str:
        """Flag passed to ``brew search`` to restrict it to this category."""
        return f"--{self.value}"
