"""
Rendition Generator
Produces the thumbnail and full-size web renditions of a source image.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Tuple

from PIL import Image, ImageOps

from utils.logger import logDebug

FORMAT_EXTENSIONS = {"webp": "webp", "jpeg": "jpg", "png": "png"}
PIL_FORMATS = {"webp": "WEBP", "jpeg": "JPEG", "png": "PNG"}


class RenditionError(Exception):
    """Decoding, resizing, encoding or writing a rendition failed."""


@dataclass(frozen=True)
class Rendition:
    path: Path
    width: int
    height: int


@dataclass(frozen=True)
class Renditions:
    thumb: Rendition
    full: Rendition


def rendition_paths(out_root: Path, stem: str, fmt: str = "webp") -> Tuple[Path, Path]:
    """Deterministic (thumb, full) output paths for a stem."""
    ext = FORMAT_EXTENSIONS[fmt]
    out_root = Path(out_root)
    return (
        out_root / "thumbs" / f"{stem}_thumb.{ext}",
        out_root / "full" / f"{stem}_full.{ext}",
    )


def scaled_size(size: Tuple[int, int], target_width: int) -> Tuple[int, int]:
    w, h = size
    return target_width, max(1, round(h * target_width / w))


class RenditionGenerator:
    def __init__(self, config: Dict):
        renditions_cfg = config.get('renditions', {})
        self.out_root = Path(config.get('paths', {}).get('out_root', '.'))
        self.thumb_width = int(renditions_cfg.get('thumb_width', 400))
        self.full_width = int(renditions_cfg.get('full_width', 1600))
        self.thumb_quality = int(renditions_cfg.get('thumb_quality', 80))
        self.full_quality = int(renditions_cfg.get('full_quality', 90))
        self.format = renditions_cfg.get('format', 'webp')

    def paths_for(self, stem: str) -> Tuple[Path, Path]:
        return rendition_paths(self.out_root, stem, self.format)

    def _prepare_mode(self, image: Image.Image) -> Image.Image:
        has_alpha = image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info)
        if self.format == "jpeg" or not has_alpha:
            return image if image.mode == "RGB" else image.convert("RGB")
        return image if image.mode == "RGBA" else image.convert("RGBA")

    def _write(self, image: Image.Image, width: int, quality: int, output_path: Path) -> Rendition:
        resized = image.resize(scaled_size(image.size, width), Image.LANCZOS)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        save_kwargs = {"quality": quality}
        if self.format == "png":
            save_kwargs = {"optimize": True}
        resized.save(output_path, PIL_FORMATS[self.format], **save_kwargs)
        logDebug(f"🖼️  {image.size[0]}×{image.size[1]} → {resized.size[0]}×{resized.size[1]}: {output_path}")
        return Rendition(path=output_path, width=resized.size[0], height=resized.size[1])

    def generate(self, source_path: Path, stem: str) -> Renditions:
        """Write both renditions for ``source_path``; raises RenditionError."""
        thumb_path, full_path = self.paths_for(stem)
        try:
            with Image.open(source_path) as opened:
                image = ImageOps.exif_transpose(opened)
                image = self._prepare_mode(image)
                thumb = self._write(image, self.thumb_width, self.thumb_quality, thumb_path)
                full = self._write(image, self.full_width, self.full_quality, full_path)
        except Exception as e:
            raise RenditionError(f"Failed to render {source_path}: {e}") from e
        return Renditions(thumb=thumb, full=full)


__all__ = ["Rendition", "RenditionError", "RenditionGenerator", "Renditions", "rendition_paths"]
