import json

from matrix_converter.cli.batch_process import main
from matrix_converter.repositories.archive_repository import ArchiveRepository

from conftest import encode_png, solid


def write_images(folder, names, bad=()):
    for name in names:
        (folder / name).write_bytes(encode_png(solid(6, 6, (40, 80, 120)).pixels))
    for name in bad:
        (folder / name).write_bytes(b"not an image")


def test_completed_batch_exits_zero(tmp_path):
    write_images(tmp_path, ["a.png", "b.png"])
    out = tmp_path / "out" / "result.zip"
    assert main([str(tmp_path), "--preset", "Vintage", "--output", str(out)]) == 0
    assert ArchiveRepository.list_members(out.read_bytes()) == ["a-converted.png", "b-converted.png"]


def test_partial_failure_exits_one(tmp_path):
    write_images(tmp_path, ["a.png"], bad=["b.png"])
    settings = tmp_path / "settings.json"
    settings.write_text(json.dumps({"sepia": 30, "pixelate": 2}))
    out = tmp_path / "result.zip"
    code = main([str(tmp_path), "--settings", str(settings), "--format", "webp", "--output", str(out)])
    assert code == 1
    assert ArchiveRepository.list_members(out.read_bytes()) == ["a-converted.webp"]


def test_fatal_batch_exits_two(tmp_path):
    write_images(tmp_path, [], bad=["a.png"])
    out = tmp_path / "result.zip"
    assert main([str(tmp_path), "--output", str(out)]) == 2
    assert not out.exists()


def test_empty_folder_exits_two(tmp_path):
    assert main([str(tmp_path)]) == 2


def test_bad_settings_file_exits_two(tmp_path):
    write_images(tmp_path, ["a.png"])
    settings = tmp_path / "settings.json"
    settings.write_text(json.dumps({"brightness": -5}))
    assert main([str(tmp_path), "--settings", str(settings)]) == 2


def test_mistyped_settings_file_exits_two(tmp_path):
    write_images(tmp_path, ["a.png"])
    settings = tmp_path / "settings.json"
    settings.write_text(json.dumps({"tintColor": 5, "colorBalance": 7}))
    assert main([str(tmp_path), "--settings", str(settings)]) == 2
