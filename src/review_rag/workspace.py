"""
Workspace file access for the indexer: glob-filtered enumeration and
size-capped UTF-8 reads.
"""

import os
import re
from pathlib import Path
from typing import Iterable, List, Optional, Union

import pathspec

_BRACE = re.compile(r'\{([^{}]*)\}')

# Never descended into, whatever the exclude patterns say
ALWAYS_SKIPPED_DIRS = {'.git', '.hg', '.svn'}


class FileTooLargeError(Exception):
    """Raised when a file exceeds the read ceiling."""

    def __init__(self, path: Union[str, Path], size: int, limit: int):
        super().__init__(f"{path} is {size} bytes (limit {limit})")
        self.path = str(path)
        self.size = size
        self.limit = limit


def expand_braces(pattern: str) -> List[str]:
    """
    Expand shell-style brace alternatives.

    Examples:
        '**/*.{ts,js}' -> ['**/*.ts', '**/*.js']
        'src/{a,b}/*.{x,y}' -> four patterns
    """
    match = _BRACE.search(pattern)
    if not match:
        return [pattern]

    head, tail = pattern[:match.start()], pattern[match.end():]
    expanded = []
    for option in match.group(1).split(','):
        expanded.extend(expand_braces(head + option + tail))
    return expanded


def compile_patterns(patterns: Iterable[str]) -> pathspec.PathSpec:
    """Compile glob patterns (with brace expansion) into a gitignore-style matcher."""
    lines: List[str] = []
    for pattern in patterns:
        for expanded in expand_braces(pattern.strip()):
            if expanded and expanded not in lines:
                lines.append(expanded)
    return pathspec.PathSpec.from_lines('gitignore', lines)


class Workspace:
    """A workspace root the indexer enumerates and reads files from."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    def relative_path(self, path: Union[str, Path]) -> str:
        """Workspace-relative path with forward slashes."""
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        try:
            relative = candidate.resolve().relative_to(self.root)
        except ValueError:
            relative = Path(os.path.relpath(candidate, self.root))
        return relative.as_posix()

    def absolute_path(self, relative_path: str) -> Path:
        return self.root / relative_path

    def find_files(self,
                   include_patterns: List[str],
                   exclude_patterns: Optional[List[str]] = None,
                   max_results: int = 5000) -> List[Path]:
        """
        List files under the root matching any include pattern and no
        exclude pattern, stopping after max_results matches.

        Directories are walked in sorted order so the result is stable.
        Directories matched by an exclude pattern are not descended into.
        """
        include = compile_patterns(include_patterns)
        exclude = compile_patterns(exclude_patterns or [])

        files: List[Path] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            dirnames[:] = sorted(
                d for d in dirnames
                if d not in ALWAYS_SKIPPED_DIRS and not self._is_excluded_dir(Path(dirpath) / d, exclude)
            )

            for filename in sorted(filenames):
                full_path = Path(dirpath) / filename
                relative = full_path.relative_to(self.root).as_posix()

                if not include.match_file(relative) or exclude.match_file(relative):
                    continue

                files.append(full_path)
                if len(files) >= max_results:
                    return files

        return files

    def _is_excluded_dir(self, directory: Path, exclude: pathspec.PathSpec) -> bool:
        # trailing slash so 'dir/**' patterns match the directory itself
        relative = directory.relative_to(self.root).as_posix() + '/'
        return exclude.match_file(relative)

    def read_text(self, path: Union[str, Path], max_bytes: int = 500_000) -> str:
        """
        Read a file as UTF-8.

        Raises:
            FileTooLargeError: file is larger than max_bytes
            OSError: file cannot be read
            UnicodeDecodeError: file is not valid UTF-8
        """
        full_path = Path(path)
        if not full_path.is_absolute():
            full_path = self.root / full_path

        size = full_path.stat().st_size
        if size > max_bytes:
            raise FileTooLargeError(full_path, size, max_bytes)

        with open(full_path, 'r', encoding='utf-8') as f:
            return f.read()
