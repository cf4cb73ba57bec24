from volkeep.snapshot import ARCHIVE_NAME
from volkeep.vcs import lfs


def _sparse(path, size):
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        f.truncate(size)


def test_threshold_boundary(tmp_path):
    _sparse(tmp_path / "data" / "exact" / ARCHIVE_NAME, 52_428_800)
    _sparse(tmp_path / "data" / "under" / ARCHIVE_NAME, 52_428_799)

    found = lfs.large_archives(tmp_path, "data")

    assert [str(rel) for rel, _ in found] == [f"data/exact/{ARCHIVE_NAME}"]
    assert lfs.needs_lfs(52_428_800)
    assert not lfs.needs_lfs(52_428_799)


def test_find_archives_ignores_other_files(tmp_path):
    _sparse(tmp_path / "data" / "a" / ARCHIVE_NAME, 10)
    _sparse(tmp_path / "data" / "a" / "other.tar.gz", 10)
    _sparse(tmp_path / "data" / "b" / "nested" / ARCHIVE_NAME, 10)

    assert [str(p) for p in lfs.find_archives(tmp_path, "data")] == [
        f"data/a/{ARCHIVE_NAME}",
        f"data/b/nested/{ARCHIVE_NAME}",
    ]
    assert lfs.find_archives(tmp_path, "nope") == []


def test_ensure_tracking_rule_appends_once(tmp_path):
    attrs = tmp_path / ".gitattributes"
    attrs.write_text("*.png binary")

    assert lfs.ensure_tracking_rule(tmp_path, "data") is True
    assert lfs.ensure_tracking_rule(tmp_path, "data") is False
    assert attrs.read_text().splitlines() == [
        "*.png binary",
        "data/**/volume-data.tar.gz filter=lfs diff=lfs merge=lfs -text",
    ]


def test_ensure_tracking_rule_respects_existing_mention(tmp_path):
    attrs = tmp_path / ".gitattributes"
    attrs.write_text("state/**/volume-data.tar.gz filter=lfs diff=lfs merge=lfs -text\n")

    assert lfs.ensure_tracking_rule(tmp_path, "data") is False


def test_force_tracking_rule_covers_all_archives(tmp_path):
    lfs.ensure_tracking_rule(tmp_path, "data")

    assert lfs.force_tracking_rule(tmp_path, "data") is True
    assert lfs.force_tracking_rule(tmp_path, "data") is False
    assert "data/**/*.tar.gz filter=lfs diff=lfs merge=lfs -text" in (tmp_path / ".gitattributes").read_text()
