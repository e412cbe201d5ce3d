import asyncio
import io

import pytest
from docx import Document
from fastapi import HTTPException, UploadFile

from niena.utils import file_upload
from niena.utils.file_upload import (
    extract_from_docx,
    extract_from_txt,
    extract_text_from_file,
    get_file_extension,
    normalize_text,
    resume_name_from_filename,
)


def make_upload(content: bytes, filename: str) -> UploadFile:
    return UploadFile(file=io.BytesIO(content), filename=filename)


def docx_bytes() -> bytes:
    doc = Document()
    doc.add_paragraph("Ama Mensah")
    doc.add_paragraph("Backend Engineer")
    table = doc.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Python"
    table.rows[0].cells[1].text = "SQL"
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def test_get_file_extension():
    assert get_file_extension("Resume.PDF") == ".pdf"
    assert get_file_extension("cv.final.docx") == ".docx"
    assert get_file_extension("README") == ""


def test_txt_decoding_falls_back():
    assert extract_from_txt("Kwame Nkrumah".encode("utf-8")) == "Kwame Nkrumah"
    assert extract_from_txt("caf\xe9".encode("cp1252")) == "caf\xe9"


def test_docx_paragraphs_and_tables():
    text = extract_from_docx(docx_bytes())
    assert text == "Ama Mensah\nBackend Engineer\nPython | SQL"


def test_upload_txt():
    text, filename = asyncio.run(extract_text_from_file(make_upload(b"My resume", "resume.txt")))
    assert text == "My resume"
    assert filename == "resume.txt"


def test_upload_rejects_unsupported_type():
    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(extract_text_from_file(make_upload(b"data", "resume.png")))
    assert exc_info.value.status_code == 400


def test_upload_rejects_large_file(monkeypatch):
    monkeypatch.setattr(file_upload, "MAX_FILE_SIZE_BYTES", 10)
    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(extract_text_from_file(make_upload(b"x" * 11, "resume.txt")))
    assert exc_info.value.status_code == 413


def test_upload_rejects_empty_text():
    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(extract_text_from_file(make_upload(b"   \n", "resume.txt")))
    assert exc_info.value.status_code == 400


def test_corrupt_pdf_is_400():
    with pytest.raises(HTTPException) as exc_info:
        asyncio.run(extract_text_from_file(make_upload(b"not a pdf", "resume.pdf")))
    assert exc_info.value.status_code == 400


def test_resume_name_from_filename():
    assert resume_name_from_filename("Ama_Mensah-CV.pdf") == "Ama Mensah-CV"
    assert resume_name_from_filename("resume.txt") == "resume"


def test_normalize_text_collapses_blank_runs():
    assert normalize_text("Ama  \n\n\n\nEngineer\x00\n") == "Ama\n\nEngineer"


def test_txt_with_bom():
    assert extract_from_txt("\ufeffAma".encode("utf-8")) == "Ama"
