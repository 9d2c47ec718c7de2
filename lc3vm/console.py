"""
Console collaborators for the LC3.

A console answers four requests from the machine: is a key waiting
(never blocks), read one character (blocks), write one character,
and flush. Characters are passed as integer codes 0-255.
"""

from collections import deque
import os
import select
import sys
import termios
import tty

from .lc3 import ConsoleError


class Console(object):
    def char_ready(self):
        raise NotImplementedError

    def read_char(self):
        raise NotImplementedError

    def write_char(self, code):
        raise NotImplementedError

    def flush(self):
        pass


class BufferConsole(Console):
    """
    Console backed by an in-memory input queue; output is collected
    and available from getvalue().
    """

    def __init__(self, text=""):
        self.input = deque()
        self.output = []
        self.feed(text)

    def feed(self, text):
        if isinstance(text, str):
            self.input.extend(ord(char) for char in text)
        else:
            self.input.extend(bytearray(text))

    def char_ready(self):
        return len(self.input) > 0

    def read_char(self):
        if not self.input:
            raise ConsoleError("end of console input")
        return self.input.popleft()

    def write_char(self, code):
        self.output.append(chr(code))

    def getvalue(self):
        return "".join(self.output)


class TerminalConsole(Console):
    """
    Console on the process's stdin/stdout. Used as a context manager:
    a terminal stdin is switched to cbreak mode (no line buffering, no
    echo) for the duration and restored afterwards. Input that is not a
    terminal (a pipe or a file) is read as is.
    """

    def __init__(self, stdin=None, stdout=None):
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self.saved = None

    def __enter__(self):
        if self.stdin.isatty():
            fd = self.stdin.fileno()
            self.saved = termios.tcgetattr(fd)
            tty.setcbreak(fd)
        return self

    def __exit__(self, *exc_info):
        try:
            self.flush()
        finally:
            if self.saved is not None:
                termios.tcsetattr(self.stdin.fileno(), termios.TCSADRAIN, self.saved)
                self.saved = None

    def char_ready(self):
        ready, _, _ = select.select([self.stdin], [], [], 0)
        return len(ready) > 0

    def read_char(self):
        try:
            data = os.read(self.stdin.fileno(), 1)
        except OSError as exc:
            raise ConsoleError("cannot read console input: %s" % exc) from exc
        if not data:
            raise ConsoleError("end of console input")
        return data[0]

    def write_char(self, code):
        try:
            self.stdout.write(chr(code))
        except (OSError, ValueError) as exc:
            raise ConsoleError("cannot write console output: %s" % exc) from exc

    def flush(self):
        try:
            self.stdout.flush()
        except (OSError, ValueError) as exc:
            raise ConsoleError("cannot flush console output: %s" % exc) from exc
