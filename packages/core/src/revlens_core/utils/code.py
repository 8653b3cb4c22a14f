import fnmatch

NON_CODE_EXTENSIONS = {
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".ico",
    ".webp",
    ".pdf",
    ".woff",
    ".woff2",
    ".ttf",
    ".mp4",
    ".mp3",
    ".zip",
    ".tar",
    ".gz",
    ".lock",  # package-lock.json, Pipfile.lock
    ".md",
    ".txt",
    ".csv",
}


def is_code_file(file_path: str) -> bool:
    return not any(file_path.lower().endswith(ext) for ext in NON_CODE_EXTENSIONS)


def is_excluded(file_path: str, patterns: list[str]) -> bool:
    """Return True if file_path matches any exclude pattern.

    Supports:
    - fnmatch globs on the full path: "src/generated/*.ts"
    - fnmatch globs on the basename: "*.min.js"
    - Directory names/prefixes: "vendor/", "migrations" (any file within that tree)
    """
    basename = file_path.rsplit("/", 1)[-1]
    for pattern in patterns:
        if fnmatch.fnmatch(file_path, pattern) or fnmatch.fnmatch(basename, pattern):
            return True
        prefix = pattern.rstrip("/") + "/"
        if file_path.startswith(prefix) or ("/" + prefix) in file_path:
            return True
    return False
