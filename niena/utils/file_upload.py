"""
Resume upload handling.

An uploaded PDF, DOCX or TXT file (5MB at most) becomes the plain text the
resume workflow analyzes. PDF pages go through PyPDF2, Word documents through
python-docx (body paragraphs, then tables, which many resume templates use
for skills grids).
"""

import io
import logging
import re
from pathlib import PurePath
from typing import Callable, Dict, Tuple

from docx import Document
from fastapi import UploadFile, HTTPException
from PyPDF2 import PdfReader

logger = logging.getLogger(__name__)

MAX_FILE_SIZE_MB = 5
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024

_BLANK_RUNS = re.compile(r'\n{3,}')


def get_file_extension(filename: str) -> str:
    return PurePath(filename).suffix.lower()


def resume_name_from_filename(filename: str) -> str:
    """'Ama_Mensah-CV.pdf' -> 'Ama Mensah-CV'"""
    return PurePath(filename).stem.replace('_', ' ').strip() or filename


def normalize_text(text: str) -> str:
    lines = [line.rstrip() for line in text.replace('\x00', '').splitlines()]
    return _BLANK_RUNS.sub('\n\n', '\n'.join(lines)).strip()


def extract_from_pdf(content: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(content))
        if reader.is_encrypted:
            raise HTTPException(status_code=400, detail="Password-protected PDF files are not supported")
        pages = [page.extract_text() or '' for page in reader.pages]
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Unreadable PDF: {e}")
    return '\n\n'.join(page for page in pages if page.strip())


def extract_from_docx(content: bytes) -> str:
    try:
        doc = Document(io.BytesIO(content))
    except Exception as e:
        raise HTTPException(status_code=400, detail=f"Unreadable DOCX: {e}")

    lines = [para.text for para in doc.paragraphs if para.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                lines.append(' | '.join(cells))
    return '\n'.join(lines)


def extract_from_txt(content: bytes) -> str:
    """UTF-8 first (with or without BOM), then Windows-1252; latin-1 never fails."""
    for encoding in ('utf-8-sig', 'cp1252'):
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            pass
    return content.decode('latin-1')


EXTRACTORS: Dict[str, Callable[[bytes], str]] = {
    '.pdf': extract_from_pdf,
    '.docx': extract_from_docx,
    '.txt': extract_from_txt,
}


def _unsupported(ext: str) -> HTTPException:
    return HTTPException(status_code=400, detail=f"Unsupported resume format '{ext or 'none'}'. Use PDF, DOCX or TXT")


def extract_text_from_bytes(content: bytes, ext: str) -> str:
    if ext not in EXTRACTORS:
        raise _unsupported(ext)
    return normalize_text(EXTRACTORS[ext](content))


async def extract_text_from_file(file: UploadFile) -> Tuple[str, str]:
    """
    Read an uploaded resume into text.

    Returns:
        (text, original filename)

    Raises:
        HTTPException: 400 missing name, unsupported format, unreadable or
            empty file; 413 over MAX_FILE_SIZE_BYTES
    """
    if not file.filename:
        raise HTTPException(status_code=400, detail="Uploaded file has no name")

    ext = get_file_extension(file.filename)
    if ext not in EXTRACTORS:
        raise _unsupported(ext)

    content = await file.read()
    if len(content) > MAX_FILE_SIZE_BYTES:
        raise HTTPException(status_code=413, detail=f"Resume files are limited to {MAX_FILE_SIZE_MB}MB")

    text = extract_text_from_bytes(content, ext)
    if not text:
        raise HTTPException(status_code=400, detail="No text found in the uploaded resume")

    logger.info("Extracted %d characters from %s", len(text), file.filename)
    return text, file.filename
