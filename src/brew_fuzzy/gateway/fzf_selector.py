from pathlib import Path
import logging
import shlex
import subprocess
from typing import List, Optional, Sequence

from ..domain.app_config import AppConfig
from ..domain.exceptions import SelectorError
from .preview_script import build_preview_script, write_preview_script

logger = logging.getLogger(__name__)

# fzf exits with 130 when the user aborts with ESC or CTRL-C
INTERRUPTED_EXIT_CODE = 130

PROMPT = "🍺 Search packages: "
HEADER = "Press ENTER to install, ESC to cancel, TAB to toggle preview"
COLOR_PALETTE = [
    "--color=bg+:#313244,bg:#1e1e2e,spinner:#f5e0dc,hl:#f38ba8",
    "--color=fg:#cdd6f4,header:#f38ba8,info:#cba6ac,pointer:#f5e0dc",
    "--color=marker:#f5e0dc,fg+:#cdd6f4,prompt:#cba6ac,hl+:#f38ba8",
]


def build_fzf_args(preview_script: Path, use_colors: bool) -> List[str]:
    """
    Returns the fzf command-line options (without the executable).
    fzf のコマンドラインオプション（実行ファイルを除く）を返します。
    """
    args = [
        "--height=80%",
        "--layout=reverse",
        "--info=inline",
        "--border=rounded",
        # fzf runs the preview through a shell
        f"--preview={shlex.quote(str(preview_script))} {{}}",
        "--preview-window=right:60%:wrap:border-left",
        f"--prompt={PROMPT}",
        f"--header={HEADER}",
        "--bind=tab:toggle-preview",
    ]
    if use_colors:
        args.extend(COLOR_PALETTE)
        args.append("--ansi")
    return args


class FzfSelector:
    """
    Lets the user pick one package through fzf.
    fzf を通じてユーザーにパッケージを 1 つ選択させます。
    """

    def __init__(self, config: AppConfig):
        self.config = config

    def prepare_preview_script(self, use_colors: bool) -> Path:
        """
        Regenerates the preview helper inside the cache directory.
        キャッシュディレクトリ内のプレビューヘルパーを再生成します。

        Raises:
            SelectorError: If the script can't be written.
        """
        content = build_preview_script(
            self.config.info_cache_dir,
            use_colors,
            max_age_seconds=int(self.config.info_max_age.total_seconds()),
            brew_command=self.config.brew_command,
        )
        script_path = self.config.preview_script
        try:
            write_preview_script(script_path, content)
        except OSError as e:
            raise SelectorError(f"Failed to create preview script {script_path}: {e}") from e
        return script_path

    def select(self, packages: Sequence[str], use_colors: bool = False) -> Optional[str]:
        """
        Runs fzf over ``packages`` and returns the chosen name.
        ``packages`` に対して fzf を実行し、選択された名前を返します。

        Args:
            packages (Sequence[str]): Candidate names, fed one per line.
                                      1 行に 1 つずつ渡される候補名。
            use_colors (bool): Enables the color theme and ANSI preview output.
                               カラーテーマと ANSI プレビュー出力を有効にします。

        Returns:
            Optional[str]: The selected package, or None if the user cancelled
                           or nothing was selected.
                           選択されたパッケージ。ユーザーがキャンセルしたか何も
                           選択されなかった場合は None。

        Raises:
            SelectorError: If fzf can't be started or fails with any other status.
                           fzf を起動できない、またはその他のステータスで失敗した場合。
        """
        script_path = self.prepare_preview_script(use_colors)
        command = [self.config.fzf_command, *build_fzf_args(script_path, use_colors)]
        logger.debug(f"Launching fzf with {len(packages)} candidates.")
        try:
            # fzf draws its interface on /dev/tty, so stdout and stderr can be captured
            result = subprocess.run(
                command,
                input="\n".join(packages),
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise SelectorError(f"Failed to launch {self.config.fzf_command}: {e}") from e

        if result.returncode == INTERRUPTED_EXIT_CODE:
            logger.info("Selection cancelled by user.")
            return None
        if result.returncode != 0:
            raise SelectorError("fzf failed", returncode=result.returncode, stderr=result.stderr or "")

        selected = (result.stdout or "").strip()
        if not selected:
            logger.info("fzf returned an empty selection.")
            return None
        logger.info(f"Selected package: {selected}")
        return selected
