# Copyright Red Hat
#
# treepatch/treediff/contentdiff.py - Tree patch content diffs
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Content diff support.

Text is handled as UTF-8 with the ``surrogateescape`` error handler so that
arbitrary byte sequences survive a decode/encode cycle unchanged. Lines are
split on ``\\n`` only and keep their line terminator.
"""
from typing import List, Optional
from abc import ABC, abstractmethod
import logging
import difflib

from treepatch import TREEPATCH_SUBSYSTEM_DIFF

from .filetypes import FileTypeDetector

_log = logging.getLogger(__name__)

_log_debug = _log.debug
_log_info = _log.info
_log_warn = _log.warning
_log_error = _log.error


def _log_debug_diff(msg, *args, **kwargs):
    """A wrapper for diff subsystem debug logs."""
    _log.debug(msg, *args, extra={"subsystem": TREEPATCH_SUBSYSTEM_DIFF}, **kwargs)


#: Marker following a diff line that has no line terminator.
NO_NEWLINE_MARKER = "\\ No newline at end of file\n"

#: Default number of context lines in unified diffs.
DEFAULT_CONTEXT_LINES = 3

_ENCODING = "utf8"
_ERRORS = "surrogateescape"


def decode_text(data: bytes) -> str:
    """
    Decode ``data`` to a string that encodes back to identical bytes.
    """
    return data.decode(_ENCODING, errors=_ERRORS)


def encode_text(text: str) -> bytes:
    """
    Encode a string produced by ``decode_text()`` back to bytes.
    """
    return text.encode(_ENCODING, errors=_ERRORS)


def split_lines(text: str) -> List[str]:
    """
    Split ``text`` into lines on ``\\n``, keeping line terminators. The final
    line has no terminator if ``text`` does not end with a newline.

    :param text: The text to split.
    :type text: ``str``
    :returns: A list of lines.
    :rtype: ``List[str]``
    """
    lines = [line + "\n" for line in text.split("\n")]
    lines[-1] = lines[-1][:-1]
    if not lines[-1]:
        lines.pop()
    return lines


def normalize_line_endings(data: bytes) -> bytes:
    """
    Convert CRLF and lone CR line endings in ``data`` to LF.

    :param data: The content to normalise.
    :type data: ``bytes``
    :returns: The normalised content.
    :rtype: ``bytes``
    """
    return data.replace(b"\r\n", b"\n").replace(b"\r", b"\n")


class DiffResult:
    """
    The result of comparing two versions of a file.
    """

    def __init__(self, is_textual: bool, artifact: Optional[bytes] = None):
        """
        Initialise a new ``DiffResult`` object.

        :param is_textual: ``True`` if the content is diff representable.
        :type is_textual: ``bool``
        :param artifact: The unified diff when ``is_textual`` is ``True``.
        :type artifact: ``Optional[bytes]``
        """
        if is_textual and artifact is None:
            raise ValueError("Textual DiffResult requires a diff artifact")
        self.is_textual = is_textual
        self.artifact = artifact

    def __repr__(self):
        size = len(self.artifact) if self.artifact is not None else 0
        return f"DiffResult(is_textual={self.is_textual}, artifact=<{size} bytes>)"


class TextDiffer(ABC):
    """
    Base class for text diff implementations.
    """

    @abstractmethod
    def diff(self, old: bytes, new: bytes, path: str) -> DiffResult:
        """
        Compare two versions of the file at relative path ``path``.

        :param old: The original content.
        :type old: ``bytes``
        :param new: The updated content.
        :type new: ``bytes``
        :param path: The relative path of the file, used in diff headers.
        :type path: ``str``
        :returns: A textual result carrying a unified diff that transforms
                  ``old`` into ``new``, or a non-textual result if the
                  content cannot be represented as a diff.
        :rtype: ``DiffResult``
        """


class DifflibTextDiffer(TextDiffer):
    """
    Unified diff generation with ``difflib``.
    """

    def __init__(
        self,
        file_type_detector: Optional[FileTypeDetector] = None,
        context_lines: int = DEFAULT_CONTEXT_LINES,
    ):
        """
        Initialise a new ``DifflibTextDiffer`` object.

        :param file_type_detector: Detector used to decide if content is
                                   text.
        :type file_type_detector: ``Optional[FileTypeDetector]``
        :param context_lines: Number of context lines around each change.
        :type context_lines: ``int``
        """
        if context_lines < 0:
            raise ValueError(f"Invalid context line count: {context_lines}")
        self.file_type_detector = file_type_detector or FileTypeDetector()
        self.context_lines = context_lines

    def diff(self, old: bytes, new: bytes, path: str) -> DiffResult:
        detector = self.file_type_detector
        if not detector.is_text(old) or not detector.is_text(new):
            _log_debug_diff("Content of '%s' is not text", path)
            return DiffResult(False)

        diff_lines = difflib.unified_diff(
            split_lines(decode_text(old)),
            split_lines(decode_text(new)),
            fromfile=f"a/{path}",
            tofile=f"b/{path}",
            n=self.context_lines,
            lineterm="\n",
        )

        out = []
        for line in diff_lines:
            if line.endswith("\n"):
                out.append(line)
            else:
                out.append(line + "\n")
                out.append(NO_NEWLINE_MARKER)

        artifact = encode_text("".join(out))
        _log_debug_diff("Generated %d byte diff for '%s'", len(artifact), path)
        return DiffResult(True, artifact)


__all__ = [
    "DiffResult",
    "DifflibTextDiffer",
    "NO_NEWLINE_MARKER",
    "TextDiffer",
    "decode_text",
    "encode_text",
    "normalize_line_endings",
    "split_lines",
]
