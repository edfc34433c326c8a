import os
import re
import random
import time
import logging
from pathlib import Path
from typing import Dict, Iterable, List

from dotenv import load_dotenv
from starlette.datastructures import UploadFile

from fields import Answer, FieldType

load_dotenv()
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

logger = logging.getLogger(__name__)


class UploadTooLarge(ValueError):
    pass


def stored_filename(field_name: str, original: str) -> str:
    """`<field>-<millis>-<random><ext>`, keeping only the original extension."""
    stem = re.sub(r"[^A-Za-z0-9_]", "_", field_name) or "file"
    ext = re.sub(r"[^A-Za-z0-9.]", "", Path(original or "").suffix)
    return f"{stem}-{int(time.time() * 1000)}-{random.randint(0, 10**9 - 1)}{ext}"


async def save_upload(field_name: str, upload: UploadFile) -> str:
    """Write one uploaded file under UPLOAD_DIR and return its stored name.

    Raises:
        UploadTooLarge: if the file exceeds MAX_UPLOAD_BYTES. Nothing is written.
    """
    data = await upload.read()
    if len(data) > MAX_UPLOAD_BYTES:
        raise UploadTooLarge(f"File for {field_name} exceeds {MAX_UPLOAD_BYTES} bytes")
    os.makedirs(UPLOAD_DIR, exist_ok=True)
    name = stored_filename(field_name, upload.filename)
    with open(os.path.join(UPLOAD_DIR, name), "wb") as fh:
        fh.write(data)
    logger.info("Stored upload %s (%d bytes)", name, len(data))
    return name


def discard_uploads(names: Iterable[str]) -> None:
    for name in names:
        try:
            os.remove(os.path.join(UPLOAD_DIR, name))
        except FileNotFoundError:
            pass


def attach_file_references(form, answers: List[Answer], stored: Dict[str, str]) -> List[Answer]:
    """Point file answers at their stored uploads.

    An answer whose name matches an upload (exactly, else case-insensitively)
    takes the stored filename as its value. Uploads with no answer are
    appended, and top-level file fields with neither get an empty answer so
    the required check sees them.

    Args:
        form (FormDefinition): The live form.
        answers (list[Answer]): Answers decoded from the request.
        stored (dict): Upload field name -> stored filename.

    Returns:
        list[Answer]: A new answer list; the input is left untouched.
    """
    by_lower = {key.lower(): name for key, name in stored.items()}
    result = []
    for answer in answers:
        ref = stored.get(answer.name, by_lower.get(answer.name.lower()))
        result.append(Answer(name=answer.name, value=answer.value if ref is None else ref))

    present = {a.name.lower() for a in result}
    for key, name in stored.items():
        if key.lower() not in present:
            result.append(Answer(name=key, value=name))
            present.add(key.lower())

    for field in form.fields:
        if field.type == FieldType.FILE and field.name.lower() not in present:
            result.append(Answer(name=field.name, value=""))
    return result
