import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class FileManager:

    def __init__(self, base_dir: Optional[Path] = None):
        if base_dir is None:
            base_dir = Path.home() / ".clipshelf" / "exports"
        self.base_dir = base_dir

    def save_file(self, payload: bytes, file_name: str) -> Path:
        """Write ``payload`` under ``base_dir`` without overwriting anything.

        ``file_name`` is reduced to its final component, and a ``_N`` suffix
        is added when the name is taken. Raises ``OSError``.
        """
        self.base_dir.mkdir(parents=True, exist_ok=True)
        file_path = self.base_dir / Path(file_name).name

        counter = 1
        original_stem = file_path.stem
        original_suffix = file_path.suffix
        while file_path.exists():
            file_path = self.base_dir / f"{original_stem}_{counter}{original_suffix}"
            counter += 1

        file_path.write_bytes(payload)
        logger.info("Saved file to %s", file_path)
        return file_path

    @staticmethod
    def default_image_name() -> str:
        return f"clipshelf-image-{datetime.now().strftime('%Y%m%d-%H%M%S')}.png"

    def get_file_uri(self, file_path: Path) -> str:
        return file_path.as_uri()
