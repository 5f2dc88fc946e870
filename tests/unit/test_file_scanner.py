from clipbatch.infrastructure.file_scanner import FileScanner


def test_group_dirs_only_pending_direct_children(watch_root, make_group):
    make_group("B")
    make_group("A")
    make_group("Done", tag="S2---")
    (watch_root / "merged").mkdir()
    (watch_root / "S1---file.mp4").write_bytes(b"not a dir")

    scanner = FileScanner()
    names = [p.name for p in scanner.group_dirs(watch_root)]

    assert names == ["S1---A", "S1---B"]


def test_outputs_sorted_by_ordinal_descending(make_group):
    group = make_group("Shoes", ordinals=[1, 10, 2], raw=["raw.mov"])

    outputs = FileScanner().outputs_of(group)

    assert [o.ordinal for o in outputs] == [10, 2, 1]
    assert outputs[0].path == group / "Shoes---10.mp4"


def test_raw_clips_exclude_outputs_and_other_files(make_group):
    group = make_group("Shoes", ordinals=[1], raw=["b.mp4", "a.MOV", "notes.txt", "S1---tagged.mp4"])

    clips = FileScanner(extensions=["mp4", ".mov"]).raw_clips_of(group)

    assert [c.name for c in clips] == ["a.MOV", "b.mp4"]


def test_scan_group_and_source_groups(watch_root, make_group):
    make_group("Shoes", ordinals=[1, 2], raw=["x.mp4"])
    make_group("Hats")

    groups = FileScanner().source_groups(watch_root)

    assert [g.name for g in groups] == ["S1---Hats", "S1---Shoes"]
    shoes = groups[1]
    assert shoes.stem == "Shoes"
    assert shoes.output_count == 2
    assert [p.name for p in shoes.raw_clips] == ["x.mp4"]


def test_scan_yields_raw_clips_in_name_order(watch_root, make_group):
    make_group("B", raw=["2.mp4"])
    make_group("A", raw=["1.mp4", "0.mkv"], ordinals=[1])

    names = [(p.parent.name, p.name) for p in FileScanner().scan(watch_root)]

    assert names == [("S1---A", "0.mkv"), ("S1---A", "1.mp4"), ("S1---B", "2.mp4")]


def test_missing_root_yields_nothing(tmp_path):
    scanner = FileScanner()
    assert scanner.group_dirs(tmp_path / "missing") == []
    assert list(scanner.scan(tmp_path / "missing")) == []


def test_custom_pending_tag(watch_root, make_group):
    make_group("Shoes", tag="NEW_", raw=["a.mp4"])
    make_group("Hats", raw=["b.mp4"])

    scanner = FileScanner(pending_tag="NEW_")

    assert [g.stem for g in scanner.source_groups(watch_root)] == ["Shoes"]


def test_hidden_sidecars_are_neither_raw_nor_outputs(watch_root, make_group):
    group = make_group("A", ordinals=[1], raw=["clip.mp4"])
    (group / "._clip.mp4").write_bytes(b"\x00\x05\x16\x07")
    (group / "._A---2.mp4").write_bytes(b"\x00\x05\x16\x07")

    scanner = FileScanner()

    assert [p.name for p in scanner.scan(watch_root)] == ["clip.mp4"]
    assert [o.ordinal for o in scanner.outputs_of(group)] == [1]
