import pytest

from selectorguard.fileio import write_text_atomic


def test_atomic_write_replaces_content_without_leftovers(tmp_path) -> None:
    target = tmp_path / "nested" / "doc.json"
    write_text_atomic(target, "one")
    write_text_atomic(target, "two")

    assert target.read_text(encoding="utf-8") == "two"
    assert [path.name for path in target.parent.iterdir()] == ["doc.json"]


def test_atomic_write_raises_os_error(tmp_path) -> None:
    blocker = tmp_path / "blocked"
    blocker.write_text("file", encoding="utf-8")

    with pytest.raises(OSError):
        write_text_atomic(blocker / "doc.json", "text")
