# Copyright Red Hat
#
# treepatch/progress.py - Tree patch terminal progress indicators
#
# This file is part of the treepatch project.
#
# SPDX-License-Identifier: Apache-2.0
"""
Terminal control and progress indicators.

Long running tree walks and classification runs report progress on the
terminal. Output is line oriented so that it remains readable when
redirected to a file; color is only used when the stream is a tty.
"""
from typing import List, Optional, TextIO
from datetime import datetime, timedelta
from abc import ABC, abstractmethod
import curses
import sys
import os

from treepatch import register_progress, unregister_progress

#: Default number of columns if not detected from terminal.
DEFAULT_COLUMNS = 80

#: Minimum width of a progress bar.
PROGRESS_MIN_WIDTH = 10

#: Default width of a progress bar as a fraction of the terminal size.
DEFAULT_WIDTH_FRAC = 0.5

#: Number of progress reports emitted over a complete run.
PROGRESS_STEPS = 10

#: Default interval between throbber frames.
THROB_INTERVAL = timedelta(milliseconds=250)


class TermControl:
    """
    Portable terminal color control.

    Uses the curses package to look up the control sequences for the
    current terminal. If the stream is not a tty, or the terminal cannot be
    set up, every attribute remains the empty string so that callers may
    unconditionally include them in output:

        >>> term = TermControl()
        >>> print(term.GREEN + "created" + term.NORMAL)
    """

    BOLD: str = ""  #: Turn on bold mode
    NORMAL: str = ""  #: Turn off all modes

    BLACK: str = ""  #: Black foreground color
    BLUE: str = ""  #: Blue foreground color
    GREEN: str = ""  #: Green foreground color
    CYAN: str = ""  #: Cyan foreground color
    RED: str = ""  #: Red foreground color
    MAGENTA: str = ""  #: Magenta foreground color
    YELLOW: str = ""  #: Yellow foreground color
    WHITE: str = ""  #: White foreground color

    columns: Optional[int] = None  #: Terminal width

    _ANSI_COLORS: List[str] = "BLACK RED GREEN YELLOW BLUE MAGENTA CYAN WHITE".split()

    def __init__(self, term_stream: Optional[TextIO] = None, color: str = "auto"):
        """
        Initialise terminal capabilities.

        :param term_stream: Output stream to probe for capabilities.
        :type term_stream: ``Optional[TextIO]``
        :param color: A string to control color rendering: "auto", "always", or
                      "never".
        :type color: ``str``
        """
        if color not in ("auto", "always", "never"):
            raise ValueError(f"Invalid color mode: {color}")

        self.term_stream = term_stream or sys.stdout

        if color == "never":
            return

        if color == "auto":
            isatty = getattr(self.term_stream, "isatty", None)
            if isatty is None or not isatty():
                return

        try:
            curses.setupterm()
        # curses.error does not derive from Exception on every platform.
        except BaseException as err:  # pylint: disable=broad-exception-caught
            if isinstance(err, (KeyboardInterrupt, SystemExit)):  # pragma: no cover
                raise
            if color == "always":
                self._force_ansi()
            return

        self.columns = curses.tigetnum("cols")
        self.BOLD = self._tigetstr("bold")
        self.NORMAL = self._tigetstr("sgr0")

        set_fg_ansi = self._tigetstr("setaf")
        if set_fg_ansi:
            for i, name in enumerate(self._ANSI_COLORS):
                value = curses.tparm(set_fg_ansi.encode("utf8"), i).decode("utf8")
                setattr(self, name, value or "")
        elif color == "always":
            self._force_ansi()

    def _force_ansi(self):
        for i, name in enumerate(self._ANSI_COLORS):
            setattr(self, name, f"\033[0;3{i}m")
        self.BOLD = "\033[1m"
        self.NORMAL = "\033[0m"

    @staticmethod
    def _tigetstr(cap_name: str) -> str:
        # Strip any "$<2>" style padding delays.
        cap = curses.tigetstr(cap_name)
        cap = cap.decode(encoding="utf8") if cap else ""
        return cap.split("$", maxsplit=1)[0]


def _flush_with_broken_pipe_guard(stream: TextIO) -> None:
    """
    Handle ``BrokenPipeError`` when attempting to flush output streams.

    :param stream: The stream to flush.
    :type stream: TextIO
    """
    if stream is None or not hasattr(stream, "flush"):
        return
    try:
        stream.flush()
    except BrokenPipeError as err:
        devnull = os.open(os.devnull, os.O_WRONLY)
        try:
            if hasattr(stream, "fileno"):
                os.dup2(devnull, stream.fileno())
        finally:
            os.close(devnull)
        raise SystemExit() from err


class ProgressBase(ABC):
    """
    An abstract progress reporting class.
    """

    def __init__(self, header: str, register: bool = True):
        """
        Initialise base progress state.

        :param header: The progress header to display.
        :type header: ``str``
        :param register: Register this ``ProgressBase`` for log callbacks.
        :type register: ``bool``
        """
        self.header: str = header
        self.total: int = 0
        self.stream: Optional[TextIO] = None
        self.registered: bool = False
        self.register: bool = register

    def reset_position(self):
        """Mark progress as displaced by external output."""

    def start(self, total: int):
        """
        Begin a progress run with the specified ``total``.

        :param total: The total number of expected progress items.
        :type total: ``int``
        """
        if total <= 0:
            raise ValueError("total must be positive.")

        self.total = total

        if self.register:
            register_progress(self)

        self._do_start()

    def _do_start(self):
        """
        Hook invoked when progress begins.
        """

    def _check_in_progress(self, done: int, step: str):
        theclass = self.__class__.__name__
        if self.total == 0:
            raise ValueError(f"{theclass}.{step}() called before start()")

        if done < 0:
            raise ValueError(f"{theclass}.{step}() done cannot be negative.")

        if done > self.total:
            raise ValueError(f"{theclass}.{step}() done cannot be > total.")

    def progress(self, done: int, message: Optional[str] = None):
        """
        Advance the progress indicator to the specified ``done`` count.

        :param done: The number of completed progress items.
        :type done: ``int``
        :param message: An optional progress message.
        :type message: ``Optional[str]``
        """
        self._check_in_progress(done, "progress")
        self._do_progress(done, message)

    @abstractmethod
    def _do_progress(self, done: int, message: Optional[str] = None):
        """
        Hook for subclasses to update the progress display.
        """

    def end(self, message: Optional[str] = None):
        """
        End the progress run and finalise the display.

        :param message: An optional completion message.
        :type message: ``Optional[str]``
        """
        self._check_in_progress(self.total, "end")
        self._do_end(message)
        self.total = 0
        if self.registered:
            unregister_progress(self)

    @abstractmethod
    def _do_end(self, message: Optional[str] = None):
        """
        Perform final end-of-progress handling.
        """

    def cancel(self, message: Optional[str] = None):
        """
        End the progress run with error and finalise the display.

        :param message: An optional error message.
        :type message: ``Optional[str]``
        """
        if self.total == 0:
            return
        self._do_end(message=message)
        self.total = 0
        if self.registered:
            unregister_progress(self)


class SimpleProgress(ProgressBase):
    """
    A line oriented progress bar that does not rely on terminal
    capabilities. A line is printed each time another tenth of the run
    completes.
    """

    BAR = "%s: %3d%% [%s%s] (%s)"  #: Progress bar format string
    DID = "="  #: Bar character for completed work.
    TODO = "-"  #: Bar character for uncompleted work.
    FIXED = 12  #: Length of fixed characters in BAR.

    def __init__(
        self,
        header: str,
        register: bool = True,
        term_stream: Optional[TextIO] = None,
        term_control: Optional[TermControl] = None,
    ):
        """
        Initialise a new ``SimpleProgress`` object.

        :param header: The progress header to display.
        :type header: ``str``
        :param register: Register this ``SimpleProgress`` for log callbacks.
        :type register: ``bool``
        :param term_stream: The terminal stream to write to.
        :type term_stream: ``Optional[TextIO]``
        :param term_control: Optional terminal control for the bar width.
        :type term_control: ``Optional[TermControl]``
        """
        super().__init__(header, register=register)
        self.stream = term_stream or sys.stdout
        columns = (term_control.columns if term_control else None) or DEFAULT_COLUMNS
        self.width: int = max(
            PROGRESS_MIN_WIDTH,
            round((columns - self.FIXED - len(header)) * DEFAULT_WIDTH_FRAC),
        )
        self._last_step: int = -1

    def _do_start(self):
        self._last_step = -1

    def _do_progress(self, done: int, message: Optional[str] = None):
        step = (done * PROGRESS_STEPS) // self.total
        if step == self._last_step:
            return
        self._last_step = step

        percent = float(done) / float(self.total)
        n = int(self.width * percent)
        print(
            self.BAR
            % (
                self.header,
                percent * 100,
                self.DID * n,
                self.TODO * (self.width - n),
                message or "",
            ),
            file=self.stream,
        )
        _flush_with_broken_pipe_guard(self.stream)

    def _do_end(self, message: Optional[str] = None):
        if message:
            print(f"{self.header}: {message}", file=self.stream)
        _flush_with_broken_pipe_guard(self.stream)


class NullProgress(ProgressBase):
    """
    A progress class that produces no output.
    """

    def _do_progress(self, done: int, message: Optional[str] = None):
        return

    def _do_end(self, message: Optional[str] = None):
        return


class ThrobberBase(ABC):
    """
    An abstract busy indicator class. Unlike ``ProgressBase`` classes
    the throbber reports progress of a task where the total number of items
    is unknown (for instance, enumerating a tree).
    """

    def __init__(self, header: str, register: bool = True):
        """
        Initialise base throbber state.

        :param header: The throbber header.
        :type header: ``str``
        :param register: Register this ``ThrobberBase`` for log callbacks.
        :type register: ``bool``
        """
        self.header: str = header
        self.stream: Optional[TextIO] = None
        self.started: bool = False
        self.count: int = 0
        self.interval: timedelta = THROB_INTERVAL
        self._last: Optional[datetime] = None
        self.registered: bool = False
        self.register: bool = register

    def reset_position(self):
        """Mark throbber as displaced by external output."""

    def _check_started(self, step: str):
        if not self.started:
            raise ValueError(f"{self.__class__.__name__}.{step}() called before start()")

    def start(self):
        """
        Begin a throbber run.
        """
        self.started = True
        self.count = 0
        self._last = datetime.now()
        if self.register:
            register_progress(self)
        self._do_start()

    def _do_start(self):
        print(f"{self.header}: ", end="", file=self.stream)
        _flush_with_broken_pipe_guard(self.stream)

    def throb(self):
        """
        Record liveness for this throbber and output a frame if required.
        """
        self._check_started("throb")
        self.count += 1
        now = datetime.now()
        if now - self._last >= self.interval:
            self._last = now
            self._do_throb()
            _flush_with_broken_pipe_guard(self.stream)

    @abstractmethod
    def _do_throb(self):
        """
        Hook for subclasses to update the throbber display.
        """

    def end(self, message: Optional[str] = None):
        """
        End the throbber run and finalise the display.

        :param message: An optional completion message.
        :type message: ``Optional[str]``
        """
        self._check_started("end")
        self._do_end(message=message)
        _flush_with_broken_pipe_guard(self.stream)
        self.started = False
        if self.registered:
            unregister_progress(self)

    def _do_end(self, message: Optional[str] = None):
        print(f" {message}" if message else "", file=self.stream)


class SimpleThrobber(ThrobberBase):
    """
    A throbber that prints a dot for each elapsed interval.
    """

    def __init__(
        self, header: str, register: bool = True, term_stream: Optional[TextIO] = None
    ):
        super().__init__(header, register=register)
        self.stream = term_stream or sys.stdout

    def _do_throb(self):
        print(".", end="", file=self.stream)


class NullThrobber(ThrobberBase):
    """
    A throbber class that produces no output.
    """

    def _do_start(self):
        """No-op start for NullThrobber."""

    def _do_throb(self):
        """No-op throb hook for NullThrobber."""

    def _do_end(self, message: Optional[str] = None):
        """No-op end for NullThrobber."""


class ProgressFactory:
    """
    A factory for constructing progress objects.
    """

    @staticmethod
    def get_progress(
        header: str,
        quiet: bool = False,
        term_stream: Optional[TextIO] = None,
        term_control: Optional[TermControl] = None,
        register: bool = True,
    ) -> ProgressBase:
        """
        Return an appropriate ProgressBase implementation.

        :param header: The progress report header.
        :type header: ``str``
        :param quiet: Suppress all output.
        :type quiet: ``bool``
        :param term_stream: An optional ``TextIO`` output object.
                            Defaults to ``sys.stdout`` if unspecified.
        :type term_stream: ``Optional[TextIO]``
        :param term_control: An optional ``TermControl`` object.
        :type term_control: ``Optional[TermControl]``
        :param register: Register the new object with the log system for
                         notification callbacks.
        :type register: ``bool``
        :returns: An appropriate progress implementation.
        :rtype: ``ProgressBase``
        """
        if term_control:
            term_stream = term_control.term_stream
        if quiet:
            return NullProgress(header, register=register)
        return SimpleProgress(
            header,
            register=register,
            term_stream=term_stream or sys.stdout,
            term_control=term_control,
        )

    @staticmethod
    def get_throbber(
        header: str,
        quiet: bool = False,
        term_stream: Optional[TextIO] = None,
        term_control: Optional[TermControl] = None,
        register: bool = True,
    ) -> ThrobberBase:
        """
        Return an appropriate ThrobberBase implementation.

        :param header: The throbber header.
        :type header: ``str``
        :param quiet: Suppress all output.
        :type quiet: ``bool``
        :param term_stream: An optional ``TextIO`` output object.
                            Defaults to ``sys.stdout`` if unspecified.
        :type term_stream: ``Optional[TextIO]``
        :param term_control: An optional ``TermControl`` object.
        :type term_control: ``Optional[TermControl]``
        :param register: Register the new object with the log system for
                         notification callbacks.
        :type register: ``bool``
        :returns: An appropriate throbber implementation.
        :rtype: ``ThrobberBase``
        """
        if term_control:
            term_stream = term_control.term_stream
        if quiet:
            return NullThrobber(header, register=register)
        return SimpleThrobber(
            header, register=register, term_stream=term_stream or sys.stdout
        )


__all__ = [
    "NullProgress",
    "NullThrobber",
    "ProgressBase",
    "ProgressFactory",
    "SimpleProgress",
    "SimpleThrobber",
    "TermControl",
    "ThrobberBase",
]
