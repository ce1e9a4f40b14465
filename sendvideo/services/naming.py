"""
Source file naming.

Watched files are named ``<group>_<title>.<ext>``. The first underscore
separates the group from the title, and the remote key is the same name
laid out hierarchically: ``alpha_clip1.mp4`` -> ``alpha/clip1.mp4``.
"""
from dataclasses import dataclass
from pathlib import PurePath


class InvalidNameError(ValueError):
    """Raised when a file name has no valid remote key mapping."""


@dataclass(frozen=True)
class SourceName:
    """A parsed ``<group>_<title><ext>`` file name."""
    group: str
    title: str
    ext: str  # includes the leading dot

    @property
    def file_name(self) -> str:
        return f"{self.group}_{self.title}{self.ext}"

    @property
    def remote_key(self) -> str:
        return f"{self.group}/{self.title}{self.ext}"


def parse_source_name(file_name: str) -> SourceName:
    """
    Split *file_name* into group, title and extension.

    Raises:
        InvalidNameError: if any of the three parts is empty, or the name
            carries a path separator.
    """
    if not file_name or PurePath(file_name).name != file_name or "/" in file_name or "\\" in file_name:
        raise InvalidNameError(f"not a bare file name: {file_name!r}")

    pure = PurePath(file_name)
    ext = pure.suffix
    stem = pure.stem
    if not ext or ext == ".":
        raise InvalidNameError(f"missing extension: {file_name!r}")

    group, sep, title = stem.partition("_")
    if not sep:
        raise InvalidNameError(f"missing '_' between group and title: {file_name!r}")
    if not group or not title:
        raise InvalidNameError(f"empty group or title: {file_name!r}")

    return SourceName(group=group, title=title, ext=ext)


def to_remote_key(file_name: str) -> str:
    """``<group>_<title><ext>`` -> ``<group>/<title><ext>``."""
    return parse_source_name(file_name).remote_key
