import pytest

from writing_assistant.sources import StoragePaths


@pytest.mark.parametrize(
    "filename, ext",
    [
        ("notes.TXT", "txt"),
        ("a.b/c", "bc"),
        ("draft.../..", "bin"),
        ("README", "bin"),
    ],
)
def test_reference_extension_is_alphanumeric(tmp_path, filename, ext):
    reference = StoragePaths(tmp_path).reference_for("user-1", "mat-1", filename)
    prefix, name = reference.rsplit("/", 1)
    assert prefix == "sources/user-1/mat-1"
    assert name.endswith(f".{ext}")


def test_odd_filename_is_stored_and_deleted_in_place(storage):
    reference = storage.issue_write_location("user-1", "mat-1", "a.b/c")
    storage.write(reference, b"data")
    material_dir = storage.paths.resolve(reference).parent
    assert material_dir == storage.paths.root / "sources" / "user-1" / "mat-1"

    storage.delete(reference)

    assert not storage.exists(reference)
    assert not material_dir.exists()


def test_resolve_rejects_escaping_references(tmp_path):
    paths = StoragePaths(tmp_path)
    with pytest.raises(ValueError):
        paths.resolve("../outside.txt")
    with pytest.raises(ValueError):
        paths.resolve("/etc/passwd")
