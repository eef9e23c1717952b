import pytest

from randonneurs.uploads import (
    MAX_FILE_SIZE,
    delete_upload,
    resolve_upload,
    save_upload,
    upload_admin_file,
)


def test_resolve_upload_stays_inside_the_upload_dir():
    assert resolve_upload("site/a.png").name == "a.png"
    with pytest.raises(ValueError, match="Invalid upload path"):
        resolve_upload("../escape.txt")
    with pytest.raises(ValueError, match="Invalid upload path"):
        resolve_upload("/etc/passwd")


def test_save_and_delete():
    stored = save_upload("a/b.txt", b"hello")
    assert stored.url == "/uploads/a/b.txt"
    assert resolve_upload("a/b.txt").read_bytes() == b"hello"
    assert delete_upload("a/b.txt") is True
    assert delete_upload("a/b.txt") is False
    assert delete_upload(None) is False


def test_admin_upload():
    stored = upload_admin_file("Club Photo.JPG", "image/jpeg", b"\xff\xd8")
    assert stored.path.startswith("site/club-photo-")
    assert stored.path.endswith(".jpg")
    assert resolve_upload(stored.path).read_bytes() == b"\xff\xd8"


def test_admin_upload_uses_the_content_type_extension_for_unknown_names():
    assert upload_admin_file("photo.exe", "image/png", b"x").path.endswith(".png")
    assert upload_admin_file("noext", "application/pdf", b"x").path.endswith(".pdf")


def test_admin_upload_validation():
    with pytest.raises(ValueError, match="Invalid file type"):
        upload_admin_file("a.html", "text/html", b"x")
    with pytest.raises(ValueError, match="too large"):
        upload_admin_file("a.png", "image/png", b"x" * (MAX_FILE_SIZE + 1))
