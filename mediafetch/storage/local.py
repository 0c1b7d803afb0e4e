"""Local file storage module"""
import logging
from pathlib import Path

from mediafetch.errors import InvalidArgument

_logger = logging.getLogger("media_fetch.storage")


class FileStorage:
    """Directory under which strategies write results and files are served by name."""

    def __init__(self, root: str) -> None:
        self.root = Path(root)

    @property
    def storage_dir(self) -> Path:
        return self.root.resolve(strict=False)

    def ensure_directories(self) -> Path:
        root = self.storage_dir
        if not root.exists():
            root.mkdir(parents=True, exist_ok=True)
            _logger.info("Created storage directory path=%s", root)
        else:
            _logger.debug("Storage directory exists path=%s", root)
        return root

    def resolve(self, name: str) -> Path:
        """Resolve a bare filename inside the storage root."""
        if not name or "/" in name or "\\" in name or name in {".", ".."}:
            _logger.warning("Rejected unsafe filename name=%r", name)
            raise InvalidArgument(f"Invalid filename: {name!r}")

        root = self.storage_dir
        path = (root / name).resolve(strict=False)
        if not path.is_relative_to(root):
            _logger.warning("Rejected filename outside root name=%r path=%s root=%s", name, path, root)
            raise InvalidArgument(f"Invalid filename: {name!r}")
        return path

    def exists(self, name: str) -> bool:
        try:
            path = self.resolve(name)
        except InvalidArgument:
            return False
        exists = path.is_file()
        _logger.debug("File check name=%s exists=%s", name, exists)
        return exists

    def size(self, name: str) -> int:
        return self.resolve(name).stat().st_size
