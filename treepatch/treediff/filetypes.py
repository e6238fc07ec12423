# Copyright Red Hat
#
# treepatch/treediff/filetypes.py - Tree patch file content types
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
File content type detection.

Changed files are stored as unified diffs when their content is text and
as full copies otherwise. Content is classified with libmagic.
"""
from typing import ClassVar, Dict, Optional
from enum import Enum
import logging
import magic

from treepatch import TREEPATCH_SUBSYSTEM_DIFF

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_diff(msg, *args, **kwargs):
    """A wrapper for diff subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREEPATCH_SUBSYSTEM_DIFF}, **kwargs)


#: Number of leading bytes passed to libmagic.
MAGIC_SAMPLE_SIZE = 2**16

_GENERIC_MIME_TYPE = "application/octet-stream"


def _is_utf8(data: bytes) -> bool:
    try:
        data.decode("utf8")
    except UnicodeDecodeError:
        return False
    return True


class FileTypeCategory(Enum):
    """
    Enum for file content categories.
    """

    TEXT = "text"
    CONFIG = "config"
    SOURCE_CODE = "source_code"
    DOCUMENT = "document"
    BINARY = "binary"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    ARCHIVE = "archive"
    EXECUTABLE = "executable"
    EMPTY = "empty"
    UNKNOWN = "unknown"


#: Categories with line oriented textual content.
TEXT_CATEGORIES = (
    FileTypeCategory.TEXT,
    FileTypeCategory.CONFIG,
    FileTypeCategory.SOURCE_CODE,
    FileTypeCategory.EMPTY,
)


class FileTypeInfo:
    """
    Class representing file content type information and encoding.
    """

    def __init__(
        self,
        mime_type: str,
        description: str,
        category: FileTypeCategory,
        encoding: Optional[str] = None,
    ):
        """
        Initialise a new ``FileTypeInfo`` object.

        :param mime_type: The detected MIME type.
        :type mime_type: ``str``
        :param description: Type description returned by magic.
        :type description: ``str``
        :param category: Content type category.
        :type category: ``FileTypeCategory``
        :param encoding: Optional content encoding.
        :type encoding: ``Optional[str]``
        """
        self.mime_type = mime_type
        self.description = description
        self.category = category
        self.encoding = encoding
        self.is_text_like = category in TEXT_CATEGORIES or (
            category == FileTypeCategory.DOCUMENT and mime_type.startswith("text/")
        )

    def __str__(self):
        """
        Return a string representation of this ``FileTypeInfo`` object.

        :returns: A human readable string describing this instance.
        :rtype: ``str``
        """
        return (
            f"MIME type: {self.mime_type}, "
            f"Category: {self.category.value}, "
            f"Encoding: {self.encoding if self.encoding else 'unknown'}, "
            f"Description: {self.description}"
        )


class FileTypeDetector:
    """
    Detect file content types using ``magic`` from python3-file-magic.
    """

    # fmt: off
    category_rules: ClassVar[Dict[str, FileTypeCategory]] = {
        # --- Archives & Compression ---
        "application/zip": FileTypeCategory.ARCHIVE,
        "application/x-tar": FileTypeCategory.ARCHIVE,
        "application/gzip": FileTypeCategory.ARCHIVE,
        "application/x-gzip": FileTypeCategory.ARCHIVE,
        "application/x-bzip2": FileTypeCategory.ARCHIVE,
        "application/x-xz": FileTypeCategory.ARCHIVE,
        "application/zstd": FileTypeCategory.ARCHIVE,
        "application/x-7z-compressed": FileTypeCategory.ARCHIVE,
        # --- Executables & Libraries ---
        "application/x-executable": FileTypeCategory.EXECUTABLE,
        "application/x-sharedlib": FileTypeCategory.EXECUTABLE,
        "application/x-pie-executable": FileTypeCategory.EXECUTABLE,
        "application/x-dosexec": FileTypeCategory.EXECUTABLE,
        "application/x-object": FileTypeCategory.EXECUTABLE,
        # --- Documents ---
        "application/pdf": FileTypeCategory.DOCUMENT,
        "application/msword": FileTypeCategory.DOCUMENT,
        "application/vnd.oasis.opendocument.text": FileTypeCategory.DOCUMENT,
        "text/rtf": FileTypeCategory.DOCUMENT,
        "text/markdown": FileTypeCategory.DOCUMENT,
        "text/troff": FileTypeCategory.DOCUMENT,
        # --- Configuration & Data Serialization ---
        "application/json": FileTypeCategory.CONFIG,
        "application/xml": FileTypeCategory.CONFIG,
        "text/xml": FileTypeCategory.CONFIG,
        "application/yaml": FileTypeCategory.CONFIG,
        "application/x-yaml": FileTypeCategory.CONFIG,
        "application/toml": FileTypeCategory.CONFIG,
        # --- Source Code ---
        "application/javascript": FileTypeCategory.SOURCE_CODE,
        "text/x-python": FileTypeCategory.SOURCE_CODE,
        "text/x-script.python": FileTypeCategory.SOURCE_CODE,
        "text/x-shellscript": FileTypeCategory.SOURCE_CODE,
        "application/x-sh": FileTypeCategory.SOURCE_CODE,
        "text/x-c": FileTypeCategory.SOURCE_CODE,
        "text/x-diff": FileTypeCategory.SOURCE_CODE,
        "text/x-makefile": FileTypeCategory.SOURCE_CODE,
        # --- Empty content ---
        "inode/x-empty": FileTypeCategory.EMPTY,
        "application/x-empty": FileTypeCategory.EMPTY,
        # --- Generic Prefixes (Fallbacks) ---
        "text/": FileTypeCategory.TEXT,
        "image/": FileTypeCategory.IMAGE,
        "audio/": FileTypeCategory.AUDIO,
        "video/": FileTypeCategory.VIDEO,
        "font/": FileTypeCategory.BINARY,
    }
    # fmt: on

    def _categorize(self, mime_type: str) -> FileTypeCategory:
        """
        Categorize content based on its MIME type.

        :param mime_type: Detected content MIME type.
        :type mime_type: ``str``
        :returns: Content type categorization.
        :rtype: ``FileTypeCategory``
        """
        mime_type = mime_type.lower()
        for pattern, category in self.category_rules.items():
            if mime_type.startswith(pattern):
                return category
        return FileTypeCategory.BINARY

    def detect_content_type(self, data: bytes) -> FileTypeInfo:
        """
        Detect content type information for the buffer ``data``.

        Empty content is always text. Content containing a NUL byte is
        always binary. Content libmagic cannot identify is text if it is
        valid UTF-8. If libmagic fails the remaining content is assumed to
        be text.

        :param data: The content to inspect.
        :type data: ``bytes``
        :returns: Content type information for ``data``.
        :rtype: ``FileTypeInfo``
        """
        if not data:
            return FileTypeInfo("inode/x-empty", "empty", FileTypeCategory.EMPTY)

        if b"\0" in data:
            return FileTypeInfo(
                "application/octet-stream", "data", FileTypeCategory.BINARY, "binary"
            )

        # c9s magic does not have magic.error
        if hasattr(magic, "error"):
            magic_errors = (magic.error, OSError, ValueError)
        else:
            magic_errors = (OSError, ValueError)

        try:
            fm = magic.detect_from_content(data[:MAGIC_SAMPLE_SIZE])
        except magic_errors as err:
            _log_warn("Error detecting content type: %s", err)
            return FileTypeInfo("text/plain", "unknown", FileTypeCategory.TEXT)

        # libmagic reports very short buffers as octet-stream.
        if fm.mime_type == _GENERIC_MIME_TYPE and _is_utf8(data):
            return FileTypeInfo("text/plain", fm.name, FileTypeCategory.TEXT, "utf-8")

        category = self._categorize(fm.mime_type)
        info = FileTypeInfo(fm.mime_type, fm.name, category, fm.encoding)
        _log_debug_diff("Detected content type: %s", info)
        return info

    def is_text(self, data: bytes) -> bool:
        """
        Return ``True`` if ``data`` is line oriented text.

        :param data: The content to inspect.
        :type data: ``bytes``
        :rtype: ``bool``
        """
        return self.detect_content_type(data).is_text_like


__all__ = [
    "FileTypeCategory",
    "FileTypeDetector",
    "FileTypeInfo",
]
