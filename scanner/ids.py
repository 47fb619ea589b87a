from __future__ import annotations

import os
import re
import unicodedata

_SEPARATORS = re.compile(r"[\\/]+")


def get_id(media_root: str | os.PathLike[str], media_path: str | os.PathLike[str]) -> str:
    """Return the catalog id for *media_path* relative to *media_root*.

    The id is the root-relative path without its extension, with ``/``
    separators and upper-cased. Paths outside the root yield ``""``.
    """

    root = os.path.abspath(os.fspath(media_root))
    target = os.path.abspath(os.fspath(media_path))
    try:
        relative = os.path.relpath(target, root)
    except ValueError:
        # different drive on Windows
        return ""
    if relative == os.curdir or relative == os.pardir or relative.startswith(os.pardir + os.sep):
        return ""
    stem, _ext = os.path.splitext(relative)
    normalized = _SEPARATORS.sub("/", unicodedata.normalize("NFC", stem)).strip("/")
    return normalized.upper()


def is_under_root(media_path: str | os.PathLike[str], root: str | os.PathLike[str]) -> bool:
    target = os.path.normpath(os.path.abspath(os.fspath(media_path)))
    base = os.path.normpath(os.path.abspath(os.fspath(root)))
    if target == base:
        return True
    return target.startswith(base.rstrip(os.sep) + os.sep)


__all__ = ["get_id", "is_under_root"]
