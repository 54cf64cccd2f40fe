"""Decide which changed files are worth sending to the oracle."""

import fnmatch

# Binary assets, archives and generated lock files: nothing reviewable in their patches.
_IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".webp", ".bmp"}
_FONT_EXTENSIONS = {".woff", ".woff2", ".ttf", ".eot", ".otf"}
_MEDIA_EXTENSIONS = {".pdf", ".mp4", ".mp3", ".wav", ".ogg"}
_ARCHIVE_EXTENSIONS = {".zip", ".tar", ".gz", ".rar", ".7z", ".jar", ".whl"}
_GENERATED_SUFFIXES = {".lock", ".min.js", ".min.css", ".map"}

NON_CODE_SUFFIXES = frozenset(
    _IMAGE_EXTENSIONS | _FONT_EXTENSIONS | _MEDIA_EXTENSIONS | _ARCHIVE_EXTENSIONS | _GENERATED_SUFFIXES
)


def is_code_file(file_name: str) -> bool:
    lowered = file_name.lower()
    return not any(lowered.endswith(suffix) for suffix in NON_CODE_SUFFIXES)


def is_excluded(filename: str, patterns: list[str]) -> bool:
    """Return True if filename matches any exclude pattern.

    Supports:
    - fnmatch globs on the full path: "src/generated/*.py"
    - fnmatch globs on the basename: "*.pb.go"
    - Directory names/prefixes: "migrations/", "vendor" (matches any file within that tree)
    """
    basename = filename.rsplit("/", 1)[-1]
    for pattern in patterns:
        if fnmatch.fnmatch(filename, pattern) or fnmatch.fnmatch(basename, pattern):
            return True
        prefix = pattern.rstrip("/") + "/"
        if filename.startswith(prefix) or ("/" + prefix) in filename:
            return True
    return False
