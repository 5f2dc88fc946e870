from pathlib import Path
from clipbatch.domain.naming import (
    consumed_name,
    group_stem,
    is_hidden,
    is_normalized_output,
    is_pending_group_name,
    is_raw_clip,
    is_video_file,
    next_ordinal,
    output_name,
    parse_ordinal,
)


def test_is_video_file_case_insensitive():
    assert is_video_file(Path("clip.MP4"))
    assert is_video_file(Path("clip.3gp"))
    assert not is_video_file(Path("notes.txt"))
    assert is_video_file(Path("clip.mkv"), ["mkv"])
    assert not is_video_file(Path("clip.mp4"), [".mkv"])


def test_parse_ordinal():
    assert parse_ordinal("Shoes---3.mp4") == 3
    assert parse_ordinal("Red---Shoes---12.mp4") == 12
    assert parse_ordinal("Shoes---3.mov") is None
    assert parse_ordinal("Shoes.mp4") is None
    assert parse_ordinal("---3.mp4") is None
    assert parse_ordinal("._Shoes---3.mp4") is None


def test_is_normalized_output():
    assert is_normalized_output(Path("/x/S1---Shoes/Shoes---1.mp4"))
    assert not is_normalized_output(Path("/x/S1---Shoes/raw.mp4"))


def test_next_ordinal_is_max_plus_one_with_gaps():
    assert next_ordinal([]) == 1
    assert next_ordinal(["raw.mp4", "notes.txt"]) == 1
    assert next_ordinal(["Shoes---1.mp4", "Shoes---3.mp4"]) == 4
    assert next_ordinal(["Shoes---10.mp4", "Shoes---9.mp4"]) == 11


def test_output_name():
    assert output_name("Shoes", 4) == "Shoes---4.mp4"


def test_group_tags():
    assert is_pending_group_name("S1---Shoes")
    assert not is_pending_group_name("S1---")
    assert not is_pending_group_name("S2---Shoes")
    assert group_stem("S1---Shoes") == "Shoes"
    assert consumed_name("S1---Shoes") == "S2---Shoes"
    assert consumed_name("A:Shoes", pending_tag="A:", consumed_tag="B:") == "B:Shoes"


def test_is_hidden():
    assert is_hidden(Path(".cache/clip.mp4"))
    assert is_hidden(Path("S1---Shoes/.clip.mp4"))
    assert not is_hidden(Path("S1---Shoes/clip.mp4"))


def test_is_raw_clip_rules(tmp_path):
    root = tmp_path
    assert is_raw_clip(root / "S1---Shoes" / "clip.mov", root)
    # Normalized outputs and tagged files are never raw material
    assert not is_raw_clip(root / "S1---Shoes" / "Shoes---1.mp4", root)
    assert not is_raw_clip(root / "S1---Shoes" / "S1---clip.mp4", root)
    # Consumed groups, untagged folders and nested folders are ignored
    assert not is_raw_clip(root / "S2---Shoes" / "clip.mov", root)
    assert not is_raw_clip(root / "Shoes" / "clip.mov", root)
    assert not is_raw_clip(root / "S1---Shoes" / "sub" / "clip.mov", root)
    assert not is_raw_clip(root / "outer" / "S1---Shoes" / "clip.mov", root)
    assert not is_raw_clip(root / "clip.mov", root)
    assert not is_raw_clip(root / "S1---Shoes" / "clip.txt", root)
    # macOS resource-fork sidecars and other dotfiles
    assert not is_raw_clip(root / "S1---Shoes" / "._clip.mp4", root)
    assert not is_raw_clip(root / "S1---Shoes" / ".clip.mov", root)
