import pytest

from lc3vm.console import BufferConsole
from lc3vm.lc3 import LC3, USER_SPACE


@pytest.fixture
def console():
    return BufferConsole()


@pytest.fixture
def lc3(console):
    return LC3(console)


@pytest.fixture
def program(lc3):
    """Place words at an origin (x3000 by default) and point the PC there."""
    def place(words, origin=USER_SPACE):
        lc3.memory.load(origin, words)
        lc3.set_pc(origin)
        return lc3
    return place
