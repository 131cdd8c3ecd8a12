from dataclasses import dataclass, field
import datetime
from typing import Any, Dict, List

# English: Epoch marker meaning "upstream update time unknown".
# 日本語: 「上流の更新時刻が不明」を表すエポック値。
EPOCH = datetime.datetime.fromtimestamp(0, tz=datetime.timezone.utc)


def _parse_timestamp(value: Any, key: str) -> datetime.datetime:
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be an ISO 8601 string, got {type(value).__name__}")
    parsed = datetime.datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


@dataclass
class CacheSnapshot:
    """
    Represents one persisted, self-consistent copy of the package list.
    永続化されたパッケージ一覧のスナップショットを表します。

    Attributes:
        packages (List[str]): Package names, formulae first and casks second.
                              パッケージ名のリスト（formula が先、cask が後）。
        last_updated (datetime.datetime): When this snapshot was built.
                                          スナップショットの作成日時。
        brew_update (datetime.datetime): Last known update of the Homebrew repository.
                                         EPOCH means unknown.
                                         Homebrew リポジトリの最終更新日時。EPOCH は不明を意味します。
    """
    packages: List[str]
    last_updated: datetime.datetime
    brew_update: datetime.datetime = field(default=EPOCH)

    def age(self, now: datetime.datetime) -> datetime.timedelta:
        """Returns how old the snapshot is at ``now``."""
        return now - self.last_updated

    def to_dict(self) -> Dict[str, Any]:
        """
        Converts the snapshot into a JSON-serializable dictionary.
        スナップショットを JSON シリアライズ可能な辞書に変換します。
        """
        return {
            "packages": list(self.packages),
            "last_updated": self.last_updated.isoformat(),
            "brew_update": self.brew_update.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "CacheSnapshot":
        """
        Builds a snapshot from its dictionary form.
        辞書形式からスナップショットを構築します。

        Args:
            data (Any): The decoded JSON document.
                        デコード済みの JSON ドキュメント。

        Returns:
            CacheSnapshot: The restored snapshot.
                           復元されたスナップショット。

        Raises:
            ValueError: If required keys are missing or have the wrong type.
                        必須キーが欠落しているか型が不正な場合。
        """
        if not isinstance(data, dict):
            raise ValueError("Cache document must be a JSON object.")
        packages = data.get("packages")
        if not isinstance(packages, list) or not all(isinstance(p, str) for p in packages):
            raise ValueError("'packages' must be a list of strings.")
        if "last_updated" not in data:
            raise ValueError("'last_updated' is missing.")
        last_updated = _parse_timestamp(data["last_updated"], "last_updated")
        brew_update = EPOCH
        if data.get("brew_update") is not None:
            brew_update = _parse_timestamp(data["brew_update"], "brew_update")
        return cls(packages=packages, last_updated=last_updated, brew_update=brew_update)
