"""
Photo Manifest Pipeline
Builds <category>_photos.json manifests with web renditions, capture dates and
reverse-geocoded locations for each photo category.
"""
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from core.asset_scanner import CategoryNotFoundError, scan_category
from core.geocode_resolver import GeocodeResolver
from core.manifest_merger import ManifestMerger
from core.manifest_store import ManifestStore
from core.metadata_extractor import MetadataExtractor
from core.photo_record import PhotoRecord
from core.rendition_generator import RenditionError, RenditionGenerator
from utils.config_utils import ConfigError, load_config
from utils.logger import logError, logInfo, logProgress, logWarn, setup_logging
from utils.time_utils import utc_now_iso_z


@dataclass
class RunSummary:
    completed: List[str] = field(default_factory=list)
    skipped_categories: List[str] = field(default_factory=list)
    photos_written: int = 0
    photos_skipped: List[str] = field(default_factory=list)
    cache_hits: int = 0
    cache_misses: int = 0
    geocode_lookups: int = 0


class ManifestPipeline:
    def __init__(
        self,
        config: Dict,
        resolver: Optional[GeocodeResolver] = None,
        extractor: Optional[MetadataExtractor] = None,
        generator: Optional[RenditionGenerator] = None,
    ):
        self.config = config
        self.paths = config.get('paths', {})
        self.src_root = Path(self.paths['src_root'])
        self.on_rendition_error = config.get('renditions', {}).get('on_error', 'skip')
        self.workers = int(config.get('pipeline', {}).get('workers', 1))

        self.extractor = extractor or MetadataExtractor()
        self.generator = generator or RenditionGenerator(config)
        self.resolver = resolver or GeocodeResolver(config)
        self.merger = ManifestMerger(config, self.extractor, self.resolver)
        self.store = ManifestStore(self.paths['out_root'])

    def _process_photo(self, source_path: Path, category: str, prior: Dict[str, Dict]) -> Optional[PhotoRecord]:
        stem = source_path.stem
        try:
            renditions = self.generator.generate(source_path, stem)
        except RenditionError as e:
            if self.on_rendition_error == 'abort':
                raise
            logWarn(f"Skipping {source_path.name}: {e}")
            return None
        return self.merger.merge(stem, source_path, renditions, prior.get(stem), category)

    def build_category_manifest(self, category: str, summary: RunSummary) -> None:
        """Scan, render, merge and write one category.

        Raises CategoryNotFoundError when the source folder is missing.
        """
        src_dir = self.src_root / category
        files = []
        seen_stems = set()
        for path in scan_category(src_dir):
            if path.stem in seen_stems:
                logWarn(f"Duplicate stem {path.stem} in {category}; ignoring {path.name}")
                summary.photos_skipped.append(str(path))
                continue
            seen_stems.add(path.stem)
            files.append(path)
        prior = self.store.load_prior(category)
        logProgress(f"📸 {category}: {len(files)} source images ({len(prior)} prior records)")

        if self.workers > 1:
            executor = ThreadPoolExecutor(max_workers=self.workers)
            futures = [executor.submit(self._process_photo, p, category, prior) for p in files]
            try:
                results = [future.result() for future in futures]
            except RenditionError:
                # Queued photos are dropped; running ones finish before the abort surfaces
                executor.shutdown(cancel_futures=True)
                raise
            finally:
                executor.shutdown()
        else:
            results = [self._process_photo(p, category, prior) for p in files]

        records = []
        for source_path, record in zip(files, results):
            if record is None:
                summary.photos_skipped.append(str(source_path))
            else:
                records.append(record)

        self.store.write(category, records)
        summary.photos_written += len(records)
        summary.completed.append(category)

    def run_pipeline(self, categories: Optional[List[str]] = None) -> RunSummary:
        """Process every category, then persist the geocode cache once."""
        if categories is None:
            categories = self.config.get('categories', [])

        logInfo(f"🚀 Starting photo manifest build at {utc_now_iso_z()}")
        logInfo(f"📋 Categories: {', '.join(categories)}")
        summary = RunSummary()
        try:
            for category in categories:
                try:
                    self.build_category_manifest(category, summary)
                except CategoryNotFoundError as e:
                    logError(f"{e}; skipping category {category}")
                    summary.skipped_categories.append(category)
        finally:
            self.resolver.save_cache()
            summary.cache_hits = self.resolver.hits
            summary.cache_misses = self.resolver.misses
            summary.geocode_lookups = self.resolver.lookups

        logProgress(
            f"✅ Done: {len(summary.completed)} categories, {summary.photos_written} photos, "
            f"{len(summary.photos_skipped)} skipped photos, {len(summary.skipped_categories)} skipped categories "
            f"(geocode cache {summary.cache_hits} hits / {summary.geocode_lookups} lookups)"
        )
        return summary


def main(argv: Optional[List[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Build photo manifests for the website")
    parser.add_argument("--config", help="Optional JSON config file")
    parser.add_argument("--categories", help="Comma separated categories to build (default: all configured)")
    parser.add_argument("--force", action="store_true", help="Discard stored locations and geocode again")
    parser.add_argument("--no-geocode", action="store_true", help="Use the geocode cache only (no network calls)")
    parser.add_argument("--workers", type=int, help="Photos processed in parallel (geocoding stays serialized)")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output to terminal")
    args = parser.parse_args(argv)

    import utils.logger as logger_module
    logger_module.VERBOSE = args.verbose

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logError(str(e))
        return 1

    if args.force:
        config['geocoding']['force_recalc'] = True
    if args.no_geocode:
        config['geocoding']['disabled'] = True
    if args.workers:
        config['pipeline']['workers'] = max(1, args.workers)

    log_cfg = config['logging']
    level = 'DEBUG' if args.verbose else log_cfg['level']
    log_file = setup_logging(level, log_cfg.get('log_dir'))
    if log_file:
        logInfo(f"📁 Log file: {log_file}")

    categories = None
    if args.categories:
        categories = [c.strip() for c in args.categories.split(',') if c.strip()]

    try:
        pipeline = ManifestPipeline(config)
    except ValueError as e:
        logError(str(e))
        return 1

    try:
        summary = pipeline.run_pipeline(categories)
    except RenditionError as e:
        logError(f"Aborting run: {e}")
        return 1
    if summary.skipped_categories:
        logWarn(f"Skipped categories: {', '.join(summary.skipped_categories)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
