"""Ephemeral storage for request attachments."""

from src.smarty.attachments.manager import (
    ATTACHMENT_DIR_NAME,
    AttachmentManager,
    decode_attachments,
)

__all__ = ["ATTACHMENT_DIR_NAME", "AttachmentManager", "decode_attachments"]
