import json
import logging
import zipfile

import pytest

from collage_sheets import main as cli
from collage_sheets.qt_scheduler import QtEventLoopScheduler

from conftest import make_image_bytes


@pytest.fixture
def workdir(tmp_path, monkeypatch, small_cells):
    monkeypatch.chdir(tmp_path)
    logger = logging.getLogger(cli.LOGGER_NAME)
    yield tmp_path
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True


def write_images(directory, count):
    directory.mkdir()
    for i in range(count):
        (directory / f"img_{i:02d}.png").write_bytes(make_image_bytes(color=("red", "blue")[i % 2]))
    return directory


def test_generates_sheets_archive_and_combined(workdir):
    images = write_images(workdir / "photos", 5)
    out = workdir / "out"
    code = cli.main([str(images), "-o", str(out), "--no-pause", "--cols", "2", "--rows", "1",
                     "--quality", "1.0", "--zip", "--combine", "--mask", "2"])
    assert code == 0
    assert sorted(p.name for p in out.glob("Part_*.png")) == ["Part_1.png", "Part_2.png", "Part_3.png"]
    archives = list(out.glob("Collage_*.zip"))
    assert len(archives) == 1
    with zipfile.ZipFile(archives[0]) as archive:
        assert len(archive.namelist()) == 3
    assert len(list(out.glob("Combined_*.png"))) == 1
    assert (workdir / "collage_sheets.log").exists()


def test_repack_reduces_sheet_count(workdir):
    images = write_images(workdir / "photos", 4)
    out = workdir / "out"
    code = cli.main([str(images), "-o", str(out), "--no-pause", "--cols", "1", "--rows", "1",
                     "--mask", "1-2", "--repack"])
    assert code == 0
    assert sorted(p.name for p in out.glob("Part_*.jpg")) == ["Part_1.jpg", "Part_2.jpg"]


def test_settings_are_saved_and_reloaded(workdir):
    images = write_images(workdir / "photos", 1)
    saved = workdir / "settings.json"
    assert cli.main([str(images), "-o", str(workdir / "a"), "--no-pause", "--cols", "4",
                     "--save-settings", str(saved)]) == 0
    assert json.loads(saved.read_text(encoding="utf-8"))["layout"]["cols"] == 4

    args = cli.build_parser().parse_args([str(images), "--settings", str(saved)])
    settings = cli.apply_overrides(cli.load_settings(args.settings), args)
    assert settings.layout.cols == 4


def test_store_import_and_dedupe(workdir):
    images = write_images(workdir / "photos", 2)
    store = workdir / "store"
    first = images / "img_00.png"
    assert cli.main([str(first), str(first), "--store", str(store), "--dedupe", "-o", str(workdir / "out"),
                     "--no-pause"]) == 0
    assert len(list((workdir / "out").glob("Part_*"))) == 1


def test_no_images_is_an_error(workdir):
    assert cli.main(["-o", str(workdir / "out"), "--no-pause"]) == 2


def test_invalid_settings_are_rejected(workdir):
    images = write_images(workdir / "photos", 1)
    assert cli.main([str(images), "--quality", "2", "--no-pause"]) == 2


def test_combine_refused_for_too_many_images(workdir):
    images = write_images(workdir / "photos", 101)
    code = cli.main([str(images), "-o", str(workdir / "out"), "--no-pause", "--cols", "10", "--rows", "20",
                     "--combine"])
    assert code == 1
    assert len(list((workdir / "out").glob("Part_*"))) == 1


def test_unreadable_store_is_reported(workdir):
    images = write_images(workdir / "photos", 1)
    store = workdir / "store"
    store.mkdir()
    (store / "index.json").write_text("{broken", encoding="utf-8")
    assert cli.main([str(images), "--store", str(store), "-o", str(workdir / "out"), "--no-pause"]) == 2
    assert not (workdir / "out").exists()


def test_qt_flag_selects_event_loop_scheduler(workdir):
    args = cli.build_parser().parse_args(["--qt", "--no-pause"])
    scheduler = cli.build_scheduler(args)
    assert isinstance(scheduler, QtEventLoopScheduler)
    assert scheduler.sheet_pause == 0

    images = write_images(workdir / "photos", 3)
    assert cli.main([str(images), "-o", str(workdir / "out"), "--qt", "--cols", "2", "--rows", "1"]) == 0
    assert len(list((workdir / "out").glob("Part_*.jpg"))) == 2
