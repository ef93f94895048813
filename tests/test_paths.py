

from bir import paths
from bir.paths import OutputPathResolver, resolve_output_path


def test_basic_candidate(tmp_path):
    out = tmp_path / "out"
    out.mkdir()
    p = resolve_output_path(tmp_path / "in" / "photo.png", out, ".jpg", set())
    assert p == out.resolve() / "photo.jpg"


def test_in_place_same_extension_gets_resized_suffix(make_image, tmp_path):
    src = make_image("photo.jpg", fmt="JPEG")
    p = resolve_output_path(src, tmp_path, ".jpg", set())
    assert p.name == "photo_resized.jpg"


def test_in_place_different_extension_keeps_name(make_image, tmp_path):
    src = make_image("photo.png", fmt="PNG")
    p = resolve_output_path(src, tmp_path, ".webp", set())
    assert p.name == "photo.webp"


def test_existing_file_on_disk_is_skipped(tmp_path):
    out = tmp_path / "out"
    out.mkdir()
    (out / "photo.jpg").write_bytes(b"x")
    (out / "photo_1.jpg").write_bytes(b"x")
    p = resolve_output_path(tmp_path / "photo.png", out, ".jpg", set())
    assert p.name == "photo_2.jpg"


def test_same_basename_from_different_dirs_is_distinct(tmp_path):
    out = tmp_path / "out"
    out.mkdir()
    resolver = OutputPathResolver()
    a = resolver.assign(tmp_path / "a" / "img.png", out, ".jpg")
    b = resolver.assign(tmp_path / "b" / "img.png", out, ".jpg")
    assert a != b


def test_n_identical_basenames_are_numbered(tmp_path):
    out = tmp_path / "out"
    out.mkdir()
    resolver = OutputPathResolver()
    names = [resolver.assign(tmp_path / f"d{i}" / "base.png", out, ".jpg").name for i in range(5)]
    assert names == ["base.jpg", "base_1.jpg", "base_2.jpg", "base_3.jpg", "base_4.jpg"]
    assert len(resolver.assigned) == 5


def test_numbering_continues_from_resized_name(make_image, tmp_path):
    src = make_image("photo.jpg", fmt="JPEG")
    (tmp_path / "photo_resized.jpg").write_bytes(b"x")
    p = resolve_output_path(src, tmp_path, ".jpg", set())
    assert p.name == "photo_resized_1.jpg"


def test_safety_cap_returns_last_candidate(tmp_path, monkeypatch):
    monkeypatch.setattr(paths, "MAX_SUFFIX", 3)
    out = tmp_path / "out"
    out.mkdir()
    for name in ("p.jpg", "p_1.jpg", "p_2.jpg", "p_3.jpg"):
        (out / name).write_bytes(b"x")

    p = resolve_output_path(tmp_path / "p.png", out, ".jpg", set())
    assert p.name == "p_3.jpg"
