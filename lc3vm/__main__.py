"""
Run an LC3 object file on the console.

    python -m lc3vm program.obj

Exits 0 on HALT, 1 on a runtime fault, 2 when the image or the
input file cannot be read and 130 when interrupted.
"""

import argparse
import sys

from ._version import __version__
from .console import TerminalConsole
from .lc3 import LC3, LC3Error, LoadError, USER_SPACE, lc_hex
from .loader import load_file


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="lc3vm", description="Run an LC-3 object file.")
    parser.add_argument("image", help="object file (.obj) to load and run")
    parser.add_argument("--allow-system", action="store_true",
                        help="accept images whose origin is below x3000")
    parser.add_argument("-i", "--input",
                        help="read console input from this file instead of the terminal")
    parser.add_argument("-d", "--debug", action="store_true",
                        help="trace register and memory writes on stderr")
    parser.add_argument("--version", action="version",
                        version="%(prog)s " + __version__)
    return parser.parse_args(argv)


def main(argv=None, stdin=None, stdout=None):
    args = parse_args(argv)
    lc3 = LC3()
    lc3.stream = sys.stderr
    try:
        load_file(lc3, args.image, min_origin=0 if args.allow_system else USER_SPACE)
    except LoadError as exc:
        lc3.Error("Load error: %s\n" % exc)
        return 2
    if args.input:
        try:
            stdin = open(args.input, 'rb')
        except OSError as exc:
            lc3.Error("Cannot read input: %s\n" % exc)
            return 2
    try:
        with TerminalConsole(stdin, stdout) as console:
            lc3.attach(console)
            lc3.debug = args.debug
            lc3.run()
    except LC3Error as exc:
        lc3.Error("\nRuntime error:\n    memory %s\n%s\n" % (
            lc_hex(getattr(exc, "address", lc3.get_pc())), exc))
        return 1
    except KeyboardInterrupt:
        lc3.Error("\nKeyboard Interrupt!\n")
        return 130
    finally:
        if args.input:
            stdin.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
