import os
from pathlib import Path
from typing import Generator, Iterable, List


class FileScanner:
    """Recursively scans for audio files in a directory."""

    def __init__(self, extensions: List[str], exclude_dirs: Iterable[Path] = ()):
        self.extensions = {(ext if ext.startswith(".") else f".{ext}").lower() for ext in extensions}
        self.exclude_dirs = {Path(d).resolve() for d in exclude_dirs}

    def scan(self, root_dir: Path) -> Generator[Path, None, None]:
        """Yields matching files (case-insensitive extension) in sorted order."""
        # Output dir equal to the scan root (in-place conversion) is not excluded
        excluded = self.exclude_dirs - {Path(root_dir).resolve()}
        for root, dirs, files in os.walk(str(root_dir)):
            root_path = Path(root)

            # Output tree nested inside the input tree must not be re-converted
            if excluded and root_path.resolve() in excluded:
                dirs[:] = []
                continue

            dirs.sort()
            files.sort()

            for file_name in files:
                file_path = root_path / file_name
                if file_path.suffix.lower() in self.extensions:
                    yield file_path

    def extensions_found(self, files: Iterable[Path]) -> List[str]:
        return sorted({f.suffix.lower() for f in files})
