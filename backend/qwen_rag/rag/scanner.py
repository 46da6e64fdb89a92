"""File selection and chunking for the RAG pipeline.

Walks a root directory, keeps files whose extension is on the allow-list and
turns each one into a single :class:`Chunk` holding the whole file's text.

Unreadable directories and unreadable or undecodable files are skipped with a
warning so a partially readable tree still yields a usable corpus.  Only a
missing or unlistable root fails the scan.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Union

from qwen_rag.errors import ScanError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS: frozenset[str] = frozenset({
    "rs", "md", "toml", "json", "graphql",
    "c", "h", "cpp", "hpp", "cc", "cxx",
    "py", "js", "ts", "java", "go", "rb", "php",
    "sh", "bash", "zsh", "fish",
    "html", "css", "scss", "sass", "xml",
    "yaml", "yml", "ini", "cfg", "conf",
})


@dataclass
class Chunk:
    """A single unit of source text ready for embedding."""

    source_path: Path
    text: str


def is_supported_file(path: Union[str, Path]) -> bool:
    """Return True if *path* has an extension on the allow-list."""
    suffix = Path(path).suffix
    return suffix[1:] in SUPPORTED_EXTENSIONS if suffix else False


class FileScanner:
    """Enumerates and reads candidate files under a root directory.

    Args:
        root_path: Directory (or single file) to scan.
    """

    def __init__(self, root_path: Union[str, Path]) -> None:
        self._root = Path(root_path)

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def collect_files(self) -> list[Path]:
        """Recursively list every regular file under the root.

        Directory entries are visited in sorted order so the result is
        deterministic for a given filesystem snapshot.

        Raises:
            ScanError: If the root does not exist or cannot be listed.
        """
        if self._root.is_file():
            return [self._root]

        try:
            # os.walk routes a bad root through onerror; it must fail here instead.
            with os.scandir(self._root):
                pass
        except OSError as exc:
            raise ScanError(f"Cannot read scan root {self._root}: {exc}") from exc

        files: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(self._root, onerror=self._on_walk_error):
            dirnames.sort()
            for name in sorted(filenames):
                path = Path(dirpath) / name
                if path.is_file():
                    files.append(path)

        logger.debug("[FileScanner] Collected %d files under %s", len(files), self._root)
        return files

    def scan_files(self) -> list[Chunk]:
        """Collect every file under the root and chunk the supported ones."""
        return self.scan_paths(self.collect_files())

    def scan_paths(self, paths: Iterable[Union[str, Path]]) -> list[Chunk]:
        """Read each supported path and return one chunk per readable file.

        Files with an unsupported extension, unreadable content or no
        content at all produce no chunk.  Whitespace-only files are kept.
        """
        chunks: list[Chunk] = []
        skipped = 0
        for raw_path in paths:
            path = Path(raw_path)
            if not is_supported_file(path):
                continue
            try:
                text = path.read_bytes().decode("utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                skipped += 1
                logger.warning("[FileScanner] Skipping unreadable file %s: %s", path, exc)
                continue
            if not text:
                continue
            chunks.append(Chunk(source_path=path, text=text))

        logger.info(
            "[FileScanner] Produced %d chunks (%d unreadable files skipped)",
            len(chunks), skipped,
        )
        return chunks

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _on_walk_error(exc: OSError) -> None:
        logger.warning("[FileScanner] Skipping unreadable directory %s: %s", exc.filename, exc)
