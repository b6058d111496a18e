"""Request-scoped attachment storage.

Attachments arrive base64-encoded in the request body. They are decoded
up front (so a bad payload is rejected before any git work), then
written into an ephemeral directory inside the working tree for the
agent to read. The directory exists only inside ``stage()``; leaving the
block removes it whatever the pipeline outcome.
"""

import base64
import binascii
import logging
import re
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Sequence

from src.smarty.errors import AttachmentError
from src.smarty.models import Attachment, ImagePayload

logger = logging.getLogger(__name__)

ATTACHMENT_DIR_NAME = ".claude-attachments"
ATTACHMENT_DIR_PERMISSIONS = 0o755

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_DATA_URL_PREFIX = re.compile(r"^data:[^;,]*;base64,")


def decode_attachments(images: Sequence[ImagePayload]) -> tuple[Attachment, ...]:
    """Decode base64 payloads into named attachments.

    Accepts plain base64 and ``data:<mime>;base64,`` URLs. Names are
    reduced to a safe file name and prefixed with their position so two
    attachments never collide.

    Raises:
        AttachmentError: If a payload is not valid base64.
    """
    attachments = []
    for index, image in enumerate(images, start=1):
        data = _DATA_URL_PREFIX.sub("", image.data.strip())
        try:
            payload = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise AttachmentError(
                f"Attachment {index} is not valid base64 data"
            ) from exc
        attachments.append(
            Attachment(name=_safe_name(image.name, index), payload=payload)
        )
    return tuple(attachments)


def _safe_name(name, index: int) -> str:
    base = Path(name).name if name else ""
    base = _UNSAFE_NAME_CHARS.sub("_", base).lstrip(".")
    if not base:
        base = "image"
    return f"{index}-{base}"


class AttachmentManager:
    """Stages attachments inside the working tree for one request.

    Attributes:
        working_directory: The managed checkout.
    """

    def __init__(self, working_directory: Path):
        self.working_directory = Path(working_directory)

    @property
    def attachment_dir(self) -> Path:
        return self.working_directory / ATTACHMENT_DIR_NAME

    @contextmanager
    def stage(self, attachments: Sequence[Attachment]) -> Iterator[list[Path]]:
        """Write attachments to disk for the duration of the block.

        Yields:
            Absolute paths of the written files, in request order. Empty
            (and no directory is created) when there are no attachments.

        Raises:
            AttachmentError: If the files cannot be written.
        """
        if not attachments:
            yield []
            return

        try:
            paths = self._write(attachments)
            yield paths
        finally:
            self._remove()

    def _write(self, attachments: Sequence[Attachment]) -> list[Path]:
        directory = self.attachment_dir
        try:
            self._exclude_from_git()
            directory.mkdir(parents=True, exist_ok=True)
            directory.chmod(ATTACHMENT_DIR_PERMISSIONS)
            paths = []
            for attachment in attachments:
                path = directory / attachment.name
                path.write_bytes(attachment.payload)
                paths.append(path.resolve())
        except OSError as exc:
            raise AttachmentError(f"Failed to store attachments: {exc}") from exc

        logger.info(
            "Staged attachments",
            extra={"count": len(paths), "directory": str(directory)},
        )
        return paths

    def _remove(self) -> None:
        """Delete the attachment directory.

        Runs while the pipeline's own exception may be propagating, so a
        cleanup failure is logged rather than raised.
        """
        if not self.attachment_dir.exists():
            return
        try:
            shutil.rmtree(self.attachment_dir)
        except OSError:
            logger.exception(
                "Failed to remove attachments",
                extra={"directory": str(self.attachment_dir)},
            )
            return
        logger.info(
            "Removed attachments",
            extra={"directory": str(self.attachment_dir)},
        )

    def _exclude_from_git(self) -> None:
        """Keep the attachment directory out of the agent's commits."""
        info_dir = self.working_directory / ".git" / "info"
        if not info_dir.parent.is_dir():
            return
        exclude_file = info_dir / "exclude"
        entry = f"/{ATTACHMENT_DIR_NAME}/"
        existing = exclude_file.read_text() if exclude_file.exists() else ""
        if entry in existing.splitlines():
            return
        info_dir.mkdir(exist_ok=True)
        with exclude_file.open("a") as handle:
            if existing and not existing.endswith("\n"):
                handle.write("\n")
            handle.write(entry + "\n")
