from pathlib import Path
import logging
import shlex
from typing import List, NamedTuple

logger = logging.getLogger(__name__)

DEFAULT_INFO_MAX_AGE_SECONDS = 3600
INFO_NOT_AVAILABLE = "Package info not available"


class HighlightRule(NamedTuple):
    """
    One `sed -E` substitution applied to `brew info` output in color mode.
    カラーモードで `brew info` の出力に適用される `sed -E` 置換ルール。

    ``replacement`` may reference the ``{on}`` / ``{off}`` escape sequences.
    """
    name: str
    pattern: str
    style: str
    replacement: str = r"{on}\1{off}"
    global_match: bool = False

    def to_sed_expression(self) -> str:
        on = f"${{ESC}}[{self.style}m"
        off = "${ESC}[0m"
        # The expression is emitted inside double quotes, so a literal `$` must be escaped
        pattern = self.pattern.replace("$", r"\$")
        replacement = self.replacement.format(on=on, off=off)
        flags = "g" if self.global_match else ""
        return f"s#{pattern}#{replacement}#{flags}"


HIGHLIGHT_RULES: List[HighlightRule] = [
    HighlightRule("section", r"^(==>.*)", "1;36"),
    HighlightRule("url", r"(https?://[^ ]+)", "4;34", global_match=True),
    HighlightRule("installed", r"^(Installed)$", "1;32"),
    HighlightRule("not_installed", r"^(Not installed)$", "1;31"),
    HighlightRule("dependency_label", r"^(Required:|Optional:|Build:|Test:|Recommended:)", "1;33"),
    HighlightRule("origin", r"^(From:|License:)", "1;37"),
    HighlightRule("installed_marker", r"( \*)", "1;32", global_match=True),
    HighlightRule("key_value", r"^([^:=/]+): (.*)$", "1;37", replacement=r"{on}\1:{off} \2"),
]


def _colorize_function() -> List[str]:
    lines = ["colorize() {", "    sed -E \\"]
    expressions = [rule.to_sed_expression() for rule in HIGHLIGHT_RULES]
    for i, expression in enumerate(expressions):
        suffix = "" if i == len(expressions) - 1 else " \\"
        lines.append(f'        -e "{expression}"{suffix}')
    lines.append("}")
    return lines


def build_preview_script(
    info_cache_dir: Path,
    use_colors: bool,
    max_age_seconds: int = DEFAULT_INFO_MAX_AGE_SECONDS,
    brew_command: str = "brew",
) -> str:
    """
    Builds the bash helper fzf runs to preview one package.
    fzf がパッケージをプレビューするために実行する bash ヘルパーを構築します。

    The script serves ``<info_cache_dir>/<package>.txt`` while it is younger than
    ``max_age_seconds``; otherwise it refreshes it from `brew info`. Tap-qualified
    names (``user/tap/name``) are flattened with ``_`` for the file name.
    スクリプトは ``max_age_seconds`` より新しい間は ``<info_cache_dir>/<package>.txt`` を返し、
    それ以外は `brew info` から更新します。

    Args:
        info_cache_dir (Path): Directory of the per-package info cache.
                               パッケージごとの情報キャッシュのディレクトリ。
        use_colors (bool): Whether to highlight the info text with ANSI colors.
                           情報テキストを ANSI カラーで強調表示するかどうか。
        max_age_seconds (int): Freshness window of a cached info file.
                               キャッシュされた情報ファイルの有効期間。
        brew_command (str): Executable used for `brew info`.
                            `brew info` に使う実行ファイル。

    Returns:
        str: The script source.
             スクリプトのソース。
    """
    lines = [
        "#!/bin/bash",
        'PACKAGE="$1"',
        f"INFO_DIR={shlex.quote(str(info_cache_dir))}",
        'CACHE_FILE="$INFO_DIR/${PACKAGE//\\//_}.txt"',
        f"MAX_AGE={int(max_age_seconds)}",
        "",
        "file_age() {",
        "    local mtime",
        '    mtime=$(stat -c %Y "$1" 2>/dev/null || stat -f %m "$1" 2>/dev/null || echo 0)',
        "    echo $(( $(date +%s) - mtime ))",
        "}",
        "",
    ]

    if use_colors:
        lines.append("ESC=$'\\033'")
        lines.append("")
        lines.extend(_colorize_function())
        lines.append("")
        lines.append('show_info() { colorize < "$1"; }')
        not_available = f'echo "${{ESC}}[1;31m{INFO_NOT_AVAILABLE}${{ESC}}[0m"'
    else:
        lines.append('show_info() { cat "$1"; }')
        not_available = f'echo "{INFO_NOT_AVAILABLE}"'

    lines.extend([
        "",
        'if [ -f "$CACHE_FILE" ] && [ "$(file_age "$CACHE_FILE")" -lt "$MAX_AGE" ]; then',
        '    show_info "$CACHE_FILE"',
        "else",
        '    mkdir -p "$INFO_DIR" 2>/dev/null',
        '    TMP_FILE="$CACHE_FILE.$$.tmp"',
        f'    if NO_COLOR=1 TERM=dumb {shlex.quote(brew_command)} info "$PACKAGE" > "$TMP_FILE" 2>/dev/null; then',
        '        mv -f "$TMP_FILE" "$CACHE_FILE"',
        '        show_info "$CACHE_FILE"',
        "    else",
        '        rm -f "$TMP_FILE"',
        f"        {not_available}",
        "    fi",
        "fi",
        "",
    ])
    return "\n".join(lines)


def write_preview_script(script_path: Path, content: str):
    """
    Writes the preview script and marks it executable.
    プレビュースクリプトを書き込み、実行可能にします。

    Raises:
        OSError: If the script can't be written.
    """
    script_path.parent.mkdir(parents=True, exist_ok=True)
    script_path.write_text(content, encoding='utf-8')
    script_path.chmod(0o755)
    logger.debug(f"Wrote preview script to {script_path}")
