from __future__ import annotations


def norm_path(p: str | None) -> str | None:
    """Normalize a player-reported path for comparisons.

    The player may report different slash styles for the same file.
    """

    if not p:
        return None
    return str(p).replace("/", "\\")


def folder_of(file_path: str | None) -> str:
    """Name of the directory holding `file_path`.

    `D:\\TV\\Show\\e01.mkv` -> `Show`, `Show/e01.mkv` -> `Show`, `e01.mkv` -> ``.
    """

    path = norm_path(file_path)
    if path is None:
        return ""
    cut = path.rfind("\\")
    if cut == -1:
        return ""
    dir_path = path[:cut]
    cut = dir_path.rfind("\\")
    if cut == -1:
        return dir_path
    return dir_path[cut + 1 :]
