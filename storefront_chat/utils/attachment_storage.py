import logging
import re
import uuid
from pathlib import Path
from typing import List, Sequence

from fastapi import Depends
from starlette.datastructures import UploadFile

from storefront_chat.config import Settings, get_settings
from storefront_chat.schemas.chat import Attachment
from storefront_chat.utils.errors import ChatValidationError


logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class AttachmentStorage:
    """Where uploaded chat images end up; returns the metadata stored on the message."""

    async def save(self, upload: UploadFile, content: bytes) -> Attachment:
        raise NotImplementedError


class LocalAttachmentStorage(AttachmentStorage):

    def __init__(self, directory: str, url_prefix: str) -> None:
        self.directory = Path(directory)
        self.url_prefix = url_prefix.rstrip("/")

    async def save(self, upload: UploadFile, content: bytes) -> Attachment:
        self.directory.mkdir(parents=True, exist_ok=True)
        suffix = Path(_UNSAFE_CHARS.sub("_", upload.filename or "")).suffix.lower()
        public_id = f"{uuid.uuid4().hex}{suffix}"
        (self.directory / public_id).write_bytes(content)
        logger.debug("Stored attachment %s (%d bytes)", public_id, len(content))
        return Attachment(url=f"{self.url_prefix}/{public_id}", bytes=len(content), public_id=public_id)


def get_attachment_storage(settings: Settings = Depends(get_settings)) -> AttachmentStorage:
    return LocalAttachmentStorage(settings.CHAT_UPLOAD_DIR, settings.CHAT_UPLOAD_URL_PREFIX)


async def store_uploads(uploads: Sequence[UploadFile], storage: AttachmentStorage, settings: Settings) -> List[Attachment]:
    """Check the uploaded files as a whole, then hand each one to ``storage``.

    Nothing is written unless every file passes.
    """
    if len(uploads) > settings.CHAT_MAX_ATTACHMENTS:
        raise ChatValidationError(f"At most {settings.CHAT_MAX_ATTACHMENTS} attachments are allowed")

    contents = []
    for upload in uploads:
        if not (upload.content_type or "").startswith("image/"):
            raise ChatValidationError("Only image attachments are supported")
        content = await upload.read()
        if not content:
            raise ChatValidationError("Attachment is empty")
        if len(content) > settings.CHAT_MAX_UPLOAD_BYTES:
            raise ChatValidationError(f"Attachments must be at most {settings.CHAT_MAX_UPLOAD_BYTES} bytes")
        contents.append(content)

    return [await storage.save(upload, content) for upload, content in zip(uploads, contents)]
