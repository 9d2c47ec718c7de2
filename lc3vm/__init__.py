from ._version import __version__
from .lc3 import (LC3, Memory, RegisterFile, decode, disassemble,
                  LC3Error, IllegalInstruction, IllegalTrap, LoadError,
                  ConsoleError)
