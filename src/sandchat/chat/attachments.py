"""Attachment handling: capability filtering and loading from disk."""

import base64
import mimetypes
from pathlib import Path

from ..llm.catalog import Capability, Model
from ..llm.models import FilePart, ImagePart, TextPart
from .models import Attachment

_TEXT_MIME_TYPES = {
    "application/json",
    "application/xml",
    "application/javascript",
    "application/x-sh",
    "application/toml",
    "application/x-yaml",
}


def model_supports(capability: Capability | str, model: Model) -> bool:
    """Check whether a model accepts an input modality."""
    return model.supports(capability)


def filter_attachments_by_model(attachments: list[Attachment], model: Model) -> list[Attachment]:
    """Drop attachments the model cannot accept.

    Images need the ``image`` capability and ``audio/*`` files need
    ``audio``; every other part passes. Order is preserved and the input
    is not modified.
    """
    kept = []
    for attachment in attachments:
        if isinstance(attachment, ImagePart):
            if not model_supports(Capability.IMAGE, model):
                continue
        elif isinstance(attachment, FilePart) and attachment.mime_type.startswith("audio/"):
            if not model_supports(Capability.AUDIO, model):
                continue
        kept.append(attachment)
    return kept


def load_attachment(path: str | Path) -> Attachment:
    """Build an attachment from a local file.

    Images become ``ImagePart``, text-like files ``TextPart`` and everything
    else a base64 ``FilePart`` with its guessed MIME type.

    Raises:
        OSError: If the file cannot be read
    """
    path = Path(path)
    mime_type, _ = mimetypes.guess_type(path.name)
    mime_type = mime_type or "application/octet-stream"
    data = path.read_bytes()

    if mime_type.startswith("image/"):
        return ImagePart(image=base64.b64encode(data).decode("ascii"), mime_type=mime_type)

    if mime_type.startswith("text/") or mime_type in _TEXT_MIME_TYPES:
        return TextPart(text=data.decode("utf-8", errors="replace"))

    return FilePart(
        data=base64.b64encode(data).decode("ascii"),
        mime_type=mime_type,
        filename=path.name,
    )
