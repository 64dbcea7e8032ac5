import pytest

from spool_agent.adapters import documents
from spool_agent.adapters.documents import copy_verified, read_page_count, remove_file
from spool_agent.errors import IntegrityError, TransientIOError


@pytest.mark.asyncio
async def test_read_page_count(tmp_path, make_pdf):
    path = make_pdf(tmp_path / "three.pdf", pages=3)

    assert await read_page_count(path) == 3


@pytest.mark.asyncio
async def test_read_page_count_of_garbage_is_none(tmp_path):
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"this is not a pdf")

    assert await read_page_count(path) is None


@pytest.mark.asyncio
async def test_read_page_count_of_missing_file_is_none(tmp_path):
    assert await read_page_count(tmp_path / "absent.pdf") is None


@pytest.mark.asyncio
async def test_copy_verified_copies_bytes(tmp_path, make_pdf):
    source = make_pdf(tmp_path / "in.pdf", pages=2)
    destination = tmp_path / "out.pdf"

    await copy_verified(source, destination)

    assert destination.read_bytes() == source.read_bytes()
    assert source.exists()


@pytest.mark.asyncio
async def test_copy_verified_wraps_os_errors(tmp_path):
    with pytest.raises(TransientIOError) as excinfo:
        await copy_verified(tmp_path / "absent.pdf", tmp_path / "out.pdf")

    assert excinfo.value.step == "copy"
    assert not (tmp_path / "out.pdf").exists()


@pytest.mark.asyncio
async def test_copy_verified_removes_truncated_copy(tmp_path, monkeypatch):
    source = tmp_path / "in.pdf"
    source.write_bytes(b"x" * 64)
    destination = tmp_path / "out.pdf"

    def _short_copy(src, dst):
        with open(dst, "wb") as stream:
            stream.write(b"x" * 10)

    monkeypatch.setattr(documents.shutil, "copyfile", _short_copy)

    with pytest.raises(IntegrityError) as excinfo:
        await copy_verified(source, destination)

    assert excinfo.value.step == "verify"
    assert not destination.exists()


@pytest.mark.asyncio
async def test_remove_file(tmp_path):
    path = tmp_path / "doomed.pdf"
    path.write_bytes(b"%PDF")

    assert await remove_file(path) is True
    assert await remove_file(path) is False
