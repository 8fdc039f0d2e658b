import re

NON_CODE_EXTENSIONS = {
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".ico",
    ".webp",
    ".bmp",
    ".pdf",
    ".woff",
    ".woff2",
    ".ttf",
    ".eot",
    ".otf",
    ".mp4",
    ".mp3",
    ".wav",
    ".ogg",
    ".zip",
    ".tar",
    ".gz",
    ".rar",
    ".7z",
    ".lock",  # e.g. Pipfile.lock, yarn.lock
    ".pyc",
    ".class",
    ".o",
    ".so",
    ".dll",
}

# Vendored, generated or build output paths that are never worth a review.
_IGNORED_PATH_RE = re.compile(
    r"(^|/)(node_modules|dist|build|coverage|\.git)/|\.min\.|(^|/)package-lock\.json$"
)


def is_code_file(file_name: str) -> bool:
    if _IGNORED_PATH_RE.search(file_name):
        return False
    return not any(file_name.lower().endswith(ext) for ext in NON_CODE_EXTENSIONS)


def count_diff_lines(diff: str) -> tuple[int, int]:
    """Return (added, removed) line counts of a unified diff, ignoring file headers."""
    added = removed = 0
    for line in (diff or "").splitlines():
        if line.startswith("+") and not line.startswith("+++"):
            added += 1
        elif line.startswith("-") and not line.startswith("---"):
            removed += 1
    return added, removed
