"""
Loading LC3 object images.

An object image is a big-endian origin address followed by the
big-endian words to place at origin, origin + 1, ...
"""

from array import array
import sys

from .lc3 import HEX, USER_SPACE, LoadError, lc_hex


def read_words(data):
    """
    Decode an object image into a list of words (origin first).
    """
    if len(data) < 2:
        raise LoadError("object image is truncated: %d bytes, no origin" % len(data))
    if len(data) % 2:
        raise LoadError("object image is truncated: odd length of %d bytes" % len(data))
    words = array('H')
    words.frombytes(bytes(data))
    if sys.byteorder == 'little':
        words.byteswap()
    return words.tolist()


def load_image(lc3, data, min_origin=USER_SPACE):
    """
    Place an object image in lc3's memory and point the PC at its
    origin. Returns the origin.
    """
    words = read_words(data)
    origin, program = words[0], words[1:]
    if origin < min_origin:
        raise LoadError("origin %s would overwrite system memory below %s" % (
            lc_hex(origin), lc_hex(min_origin)))
    if origin + len(program) > len(lc3.memory):
        raise LoadError("%d words at %s run past the end of memory" % (
            len(program), lc_hex(origin)))
    lc3.memory.load(origin, program)
    lc3.orig = HEX(origin)
    lc3.set_pc(origin)
    return origin


def load_file(lc3, filename, min_origin=USER_SPACE):
    try:
        with open(filename, 'rb') as fp:
            data = fp.read()
    except OSError as exc:
        raise LoadError("cannot read %s: %s" % (filename, exc)) from exc
    origin = load_image(lc3, data, min_origin)
    lc3.filename = filename
    return origin


def parse_hex_image(text):
    """
    Turn whitespace separated hex words (x3000, 0x3000 or 3000) into
    an object image. Anything after a ';' on a line is a comment.
    """
    words = []
    for line in text.splitlines():
        for word in line.split(";")[0].split():
            digits = word.lower()
            if digits.startswith("0x"):
                digits = digits[2:]
            elif digits.startswith("x"):
                digits = digits[1:]
            try:
                value = int(digits, 16)
            except ValueError:
                raise LoadError("not a hex word: %r" % word) from None
            if not 0 <= value <= 0xFFFF:
                raise LoadError("not a 16-bit word: %r" % word)
            words.append(value)
    image = array('H', words)
    if sys.byteorder == 'little':
        image.byteswap()
    return image.tobytes()
