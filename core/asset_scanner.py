from __future__ import annotations

from pathlib import Path
from typing import List

from utils.logger import logDebug

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png"}


class CategoryNotFoundError(FileNotFoundError):
    """The source directory of a category does not exist."""


def is_source_image(path: Path) -> bool:
    if path.name.startswith("."):
        return False
    return path.suffix.lower() in IMAGE_EXTENSIONS


def scan_category(directory: Path) -> List[Path]:
    """List source images directly inside ``directory``, in filesystem order.

    Hidden files (including ``._`` AppleDouble artifacts) and non-image files
    are left out. Renditions are written under the output root, never here,
    so names like ``glass_half_full.jpg`` are ordinary sources.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise CategoryNotFoundError(f"Source folder not found: {directory}")
    images = []
    for path in directory.iterdir():
        if not path.is_file():
            continue
        if is_source_image(path):
            images.append(path)
        else:
            logDebug(f"Ignoring non-source file {path.name} in {directory}")
    return images
