from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import List

import pytest

import pipeline as pipeline_module
from conftest import FakeProvider, make_config, write_photo
from core.geocode_resolver import GeocodeResolver
from core.rendition_generator import RenditionError, RenditionGenerator
from pipeline import ManifestPipeline


def _run(config, provider=None, categories=None):
    resolver = GeocodeResolver(config, provider=provider if provider is not None else FakeProvider())
    summary = ManifestPipeline(config, resolver=resolver).run_pipeline(categories)
    return summary


def _manifest(tmp_path: Path, category: str):
    return json.loads((tmp_path / "out" / f"{category}_photos.json").read_text(encoding="utf-8"))


def test_single_photo_with_geocoding_disabled(tmp_path: Path) -> None:
    write_photo(tmp_path / "src" / "photography" / "venice-beach.jpg",
                taken="2021:06:01 10:00:00", gps=(34.05, -118.25))
    config = make_config(tmp_path, disabled=True)
    provider = FakeProvider()

    summary = _run(config, provider, ["photography"])

    assert summary.completed == ["photography"]
    assert provider.calls == []
    [record] = _manifest(tmp_path, "photography")
    out = (tmp_path / "out").as_posix()
    assert record == {
        "thumbSrc": f"{out}/thumbs/venice-beach_thumb.webp",
        "fullSrc": f"{out}/full/venice-beach_full.webp",
        "alt": "venice beach",
        "date": "2021-06-01",
        "width": 1600,
        "height": 1200,
        "caption": "venice beach",
        "city": None,
        "country": None,
    }
    assert (tmp_path / "out" / "thumbs" / "venice-beach_thumb.webp").exists()
    assert (tmp_path / "out" / "full" / "venice-beach_full.webp").exists()


def test_missing_category_is_skipped_and_others_complete(tmp_path: Path) -> None:
    write_photo(tmp_path / "src" / "photography" / "a.jpg", taken="2020:01:01 12:00:00")
    config = make_config(tmp_path)

    summary = _run(config, categories=["me", "photography"])

    assert summary.skipped_categories == ["me"]
    assert summary.completed == ["photography"]
    assert not (tmp_path / "out" / "me_photos.json").exists()
    assert len(_manifest(tmp_path, "photography")) == 1


def test_rerun_is_idempotent_and_uses_cache(tmp_path: Path) -> None:
    src = tmp_path / "src" / "photography"
    write_photo(src / "pier_1.jpg", taken="2021:06:01 10:00:00", gps=(34.05, -118.25))
    write_photo(src / "pier_2.jpg", taken="2021:06:02 10:00:00", gps=(34.05002, -118.25002))
    write_photo(src / "studio.jpg", taken="2022:02:02 08:00:00")
    config = make_config(tmp_path)

    first_provider = FakeProvider()
    _run(config, first_provider, ["photography"])
    first = {r["thumbSrc"]: r for r in _manifest(tmp_path, "photography")}
    assert len(first_provider.calls) == 1

    second_provider = FakeProvider()
    _run(config, second_provider, ["photography"])
    second = {r["thumbSrc"]: r for r in _manifest(tmp_path, "photography")}

    assert second_provider.calls == []
    assert first == second
    by_name = {Path(k).name: v for k, v in second.items()}
    assert by_name["pier_1_thumb.webp"]["city"] == "Los Angeles"
    assert by_name["pier_2_thumb.webp"]["country"] == "United States"
    assert by_name["studio_thumb.webp"]["city"] is None

    cache = json.loads((tmp_path / "out" / "geocode-cache.json").read_text(encoding="utf-8"))
    assert cache == {"34.0500,-118.2500": {"city": "Los Angeles", "country": "United States"}}


def test_manual_caption_survives_rerun(tmp_path: Path) -> None:
    write_photo(tmp_path / "src" / "me" / "IMG_0042.jpg", taken="2018:03:03 09:00:00")
    config = make_config(tmp_path)
    _run(config, categories=["me"])

    manifest_path = tmp_path / "out" / "me_photos.json"
    records = json.loads(manifest_path.read_text(encoding="utf-8"))
    records[0]["caption"] = "Me, finally finishing the marathon 🏃"
    manifest_path.write_text(json.dumps(records, indent=2), encoding="utf-8")

    _run(config, categories=["me"])

    [record] = _manifest(tmp_path, "me")
    assert record["caption"] == "Me, finally finishing the marathon 🏃"
    assert record["alt"] == "IMG 0042"


def test_skip_listed_category_never_geocodes_even_when_forced(tmp_path: Path) -> None:
    write_photo(tmp_path / "src" / "me" / "selfie.jpg", taken="2021:06:01 10:00:00", gps=(34.05, -118.25))
    config = make_config(tmp_path, skip_gps_categories=["me"], force_recalc=True)
    provider = FakeProvider()

    _run(config, provider, ["me"])

    assert provider.calls == []
    [record] = _manifest(tmp_path, "me")
    assert record["city"] is None


def test_corrupt_prior_manifest_is_rebuilt(tmp_path: Path) -> None:
    write_photo(tmp_path / "src" / "me" / "a.jpg", taken="2021:06:01 10:00:00")
    out = tmp_path / "out"
    out.mkdir()
    (out / "me_photos.json").write_text("{{{", encoding="utf-8")

    _run(make_config(tmp_path), categories=["me"])

    assert len(_manifest(tmp_path, "me")) == 1


def test_broken_image_is_skipped_by_default(tmp_path: Path) -> None:
    src = tmp_path / "src" / "photography"
    write_photo(src / "good.jpg", taken="2021:06:01 10:00:00")
    (src / "broken.jpg").write_bytes(b"not really a jpeg")

    summary = _run(make_config(tmp_path), categories=["photography"])

    assert [Path(r["fullSrc"]).name for r in _manifest(tmp_path, "photography")] == ["good_full.webp"]
    assert summary.photos_skipped == [str(src / "broken.jpg")]


def test_source_with_full_suffix_gets_its_own_record(tmp_path: Path) -> None:
    src = tmp_path / "src" / "photography"
    write_photo(src / "glass_half_full.jpg", taken="2021:06:01 10:00:00")
    write_photo(src / "sunset.jpg", taken="2021:06:02 10:00:00")

    summary = _run(make_config(tmp_path), categories=["photography"])

    names = {Path(r["fullSrc"]).name for r in _manifest(tmp_path, "photography")}
    assert names == {"glass_half_full_full.webp", "sunset_full.webp"}
    assert summary.photos_written == 2
    assert summary.photos_skipped == []


def test_broken_image_aborts_when_configured(tmp_path: Path) -> None:
    src = tmp_path / "src" / "photography"
    (src).mkdir(parents=True)
    (src / "broken.jpg").write_bytes(b"not really a jpeg")
    config = make_config(tmp_path)
    config["renditions"]["on_error"] = "abort"

    with pytest.raises(RenditionError):
        _run(config, categories=["photography"])
    assert not (tmp_path / "out" / "photography_photos.json").exists()


class SlowGenerator(RenditionGenerator):
    """Fails on 'broken', renders everything else slowly and counts calls."""

    def __init__(self, config) -> None:
        super().__init__(config)
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def generate(self, source, stem):
        with self._lock:
            self.calls.append(stem)
        if stem == "broken":
            raise RenditionError(f"cannot decode {source}")
        time.sleep(0.2)
        return super().generate(source, stem)


def test_parallel_abort_cancels_queued_photos(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    src = tmp_path / "src" / "photography"
    src.mkdir(parents=True)
    (src / "broken.jpg").write_bytes(b"not really a jpeg")
    for i in range(10):
        write_photo(src / f"shot_{i}.jpg", size=(32, 24), taken="2021:06:01 10:00:00")
    config = make_config(tmp_path)
    config["renditions"]["on_error"] = "abort"
    config["pipeline"]["workers"] = 2
    generator = SlowGenerator(config)
    runner = ManifestPipeline(config, resolver=GeocodeResolver(config, provider=FakeProvider()),
                              generator=generator)
    # Failing photo first so the abort is seen before the queue drains
    ordered = sorted(pipeline_module.scan_category(src), key=lambda p: p.stem != "broken")

    monkeypatch.setattr(pipeline_module, "scan_category", lambda directory: ordered)

    with pytest.raises(RenditionError):
        runner.run_pipeline(["photography"])

    assert "broken" in generator.calls
    assert len(generator.calls) < 6
    assert not (tmp_path / "out" / "photography_photos.json").exists()


def test_parallel_workers_keep_scan_order_and_single_lookup(tmp_path: Path) -> None:
    src = tmp_path / "src" / "photography"
    for i in range(6):
        write_photo(src / f"shot_{i}.jpg", size=(64, 48), taken="2021:06:01 10:00:00", gps=(46.0207, 7.7491))
    config = make_config(tmp_path)
    config["pipeline"]["workers"] = 3
    provider = FakeProvider(results=[{"village": "Zermatt", "country": "Switzerland"}])

    resolver = GeocodeResolver(config, provider=provider)
    runner = ManifestPipeline(config, resolver=resolver)
    scanned = [p.stem for p in pipeline_module.scan_category(src)]
    runner.run_pipeline(["photography"])

    records = _manifest(tmp_path, "photography")
    assert [Path(r["thumbSrc"]).name.replace("_thumb.webp", "") for r in records] == scanned
    assert {r["city"] for r in records} == {"Zermatt"}
    assert len(provider.calls) == 1


def test_main_runs_with_environment_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    write_photo(tmp_path / "src" / "photography" / "a.jpg", taken="2021:06:01 10:00:00", gps=(34.05, -118.25))
    for name in ("OUT_BASE_DIR", "GEOCODER_API_KEY", "LOG_LEVEL", "SKIP_GPS_FOLDERS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SRC_BASE_DIR", str(tmp_path / "src"))
    monkeypatch.setenv("OUT_BASE_DIR", str(tmp_path / "out"))
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.chdir(tmp_path)

    exit_code = pipeline_module.main(["--categories", "photography,me", "--no-geocode"])

    assert exit_code == 0
    [record] = _manifest(tmp_path, "photography")
    assert record["city"] is None
    assert (tmp_path / "out" / "geocode-cache.json").exists()
    assert any((tmp_path / "logs").iterdir())


def test_main_reports_config_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEOCODE_DELAY_MS", "soon")
    assert pipeline_module.main([]) == 1
