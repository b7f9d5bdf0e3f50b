"""Manifest Store

Reads the previous run's per-category manifest and writes the new one.

Each category has one ``<category>_photos.json`` file under the output root:
a JSON array of photo records in scan order. The file is always rewritten
whole; writes go through a temporary file + replace so a crash never leaves
a half-written manifest behind. A prior manifest that is missing, corrupt or
not an array is treated as "no prior data".
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable

from core.photo_record import PhotoRecord, stem_of_entry
from utils.logger import logInfo, logWarn


class ManifestStore:
    def __init__(self, out_root: str):
        self.out_root = Path(out_root)

    def manifest_path(self, category: str) -> Path:
        return self.out_root / f"{category}_photos.json"

    # ---------- Core IO ----------
    def load_prior(self, category: str) -> Dict[str, Dict[str, Any]]:
        """Prior records keyed by stem."""
        path = self.manifest_path(category)
        if not path.exists():
            return {}
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logWarn(f"Ignoring unreadable manifest {path}: {e}")
            return {}
        if not isinstance(data, list):
            logWarn(f"Ignoring manifest {path}: expected a JSON array")
            return {}

        prior: Dict[str, Dict[str, Any]] = {}
        for entry in data:
            if not isinstance(entry, dict):
                continue
            stem = stem_of_entry(entry)
            if stem:
                prior[stem] = entry
        return prior

    def write(self, category: str, records: Iterable[PhotoRecord]) -> Path:
        path = self.manifest_path(category)
        payload = [record.to_json() for record in records]
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix('.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
            f.write("\n")
        tmp_path.replace(path)
        logInfo(f"✅ Wrote {len(payload)} entries to {path}")
        return path


__all__ = ["ManifestStore"]
