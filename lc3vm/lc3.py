"""
The Little Computer 3 virtual machine.

Executes LC3 machine code the way the hardware does: 16-bit words,
wrap-around two's-complement arithmetic, N/Z/P condition codes,
memory-mapped keyboard and display registers, and the console TRAP
service routines (GETC, OUT, PUTS, IN, PUTSP, HALT).
"""

from array import array
from collections import namedtuple
import sys

USER_SPACE = 0x3000  # default load address, first word of user memory

# Memory-mapped device registers
KBSR = 0xFE00  # keyboard status
KBDR = 0xFE02  # keyboard data
DSR = 0xFE04   # display status
DDR = 0xFE06   # display data

READY = 1 << 15

PC = 8  # RegisterFile index of the program counter

FLAG_N = 0b100
FLAG_Z = 0b010
FLAG_P = 0b001

TRAP_GETC = 0x20
TRAP_OUT = 0x21
TRAP_PUTS = 0x22
TRAP_IN = 0x23
TRAP_PUTSP = 0x24
TRAP_HALT = 0x25

trap_names = {
    TRAP_GETC: "GETC",
    TRAP_OUT: "OUT",
    TRAP_PUTS: "PUTS",
    TRAP_IN: "IN",
    TRAP_PUTSP: "PUTSP",
    TRAP_HALT: "HALT",
}

IN_PROMPT = "Enter a character: "


class LC3Error(Exception):
    """Base class of everything the machine raises."""


class IllegalInstruction(LC3Error):
    """RTI or the reserved opcode was fetched."""

    def __init__(self, address, instruction):
        self.address = address
        self.instruction = instruction
        LC3Error.__init__(self, "illegal instruction %s (%s) at %s" % (
            lc_hex(instruction), disassemble(instruction), lc_hex(address)))


class IllegalTrap(LC3Error):
    """TRAP to a vector with no service routine."""

    def __init__(self, address, vector):
        self.address = address
        self.vector = vector
        LC3Error.__init__(self, "invalid TRAP vector x%02X at %s" % (
            vector, lc_hex(address)))


class LoadError(LC3Error):
    """The object image cannot be placed in memory."""


class ConsoleError(LC3Error, IOError):
    """The console collaborator failed to read or write."""


class HEX(int):
    def __repr__(self):
        return lc_hex(self)


def lc_hex(h):
    """ Format the value in the form xFFFF """
    return 'x%04X' % lc_bin(h)


def lc_bin(v):
    """ Truncate any extra bytes """
    return v & 0xFFFF


def sext(binary, bits):
    """
    Sign-extend the binary number, check the most significant
    bit
    """
    if binary & (1 << (bits - 1)):
        return lc_bin(binary | (0xFFFF << bits))
    else:
        return binary


def lc_int(v):
    if v & (1 << 15): # negative
        return -((~(v & 0xFFFF) + 1) & 0xFFFF)
    else:
        return v


def plus(v1, v2):
    """
    Add two words, wrapping around at 16 bits.
    """
    return lc_bin(v1 + v2)


class Memory(object):
    """
    65536 words of storage. The keyboard and display registers are
    answered live from the console; everything else is plain storage.
    """
    size = 1 << 16

    def __init__(self, console=None):
        self.console = console
        self.cells = array('H', [0]) * self.size

    def __len__(self):
        return self.size

    def read(self, address):
        address = lc_bin(address)
        if address == KBSR:
            if self.key_ready():
                self.cells[KBSR] = READY
            else:
                self.cells[KBSR] = 0
        elif address == KBDR:
            # nothing pending: the last character stays in the register
            if self.key_ready():
                self.cells[KBDR] = self.console.read_char() & 0xFF
                self.cells[KBSR] = 0
        elif address == DSR:
            self.cells[DSR] = READY
        return self.cells[address]

    def write(self, address, value):
        address = lc_bin(address)
        self.cells[address] = lc_bin(value)
        if address == DDR and self.console is not None:
            self.console.write_char(value & 0xFF)
            self.console.flush()

    def key_ready(self):
        return self.console is not None and self.console.char_ready()

    def load(self, origin, words):
        """
        Copy words into memory starting at origin, bypassing the
        device registers.
        """
        self.cells[origin:origin + len(words)] = array('H', words)


class RegisterFile(object):
    """
    R0-R7, the program counter, and the condition code. Exactly one of
    FLAG_N, FLAG_Z, FLAG_P is set at any time.
    """

    def __init__(self, pc=USER_SPACE):
        self.general = array('H', [0] * 8)
        self.pc = pc
        self.cond = FLAG_Z

    def read(self, index):
        if index == PC:
            return self.pc
        return self.general[index]

    def write(self, index, value):
        if index == PC:
            self.pc = lc_bin(value)
        else:
            self.general[index] = lc_bin(value)

    def set_flags(self, value):
        value = lc_bin(value)
        if value == 0:
            self.cond = FLAG_Z
        elif value & (1 << 15):
            self.cond = FLAG_N
        else:
            self.cond = FLAG_P

    def nzp(self):
        return (int(self.cond == FLAG_N),
                int(self.cond == FLAG_Z),
                int(self.cond == FLAG_P))


# Decoded instructions, one variant per opcode. Offsets and immediates
# are already sign-extended to 16 bits. ADD/AND carry either sr2 or
# imm5; the other field is None.
BR = namedtuple('BR', 'n z p offset9')
ADD = namedtuple('ADD', 'dr sr1 sr2 imm5')
LD = namedtuple('LD', 'dr offset9')
ST = namedtuple('ST', 'sr offset9')
JSR = namedtuple('JSR', 'offset11')
JSRR = namedtuple('JSRR', 'base')
AND = namedtuple('AND', 'dr sr1 sr2 imm5')
LDR = namedtuple('LDR', 'dr base offset6')
STR = namedtuple('STR', 'sr base offset6')
RTI = namedtuple('RTI', '')
NOT = namedtuple('NOT', 'dr sr')
LDI = namedtuple('LDI', 'dr offset9')
STI = namedtuple('STI', 'sr offset9')
JMP = namedtuple('JMP', 'base')
RESERVED = namedtuple('RESERVED', 'word')
LEA = namedtuple('LEA', 'dr offset9')
TRAP = namedtuple('TRAP', 'vector')

variants = (BR, ADD, LD, ST, JSR, JSRR, AND, LDR, STR, RTI, NOT, LDI,
            STI, JMP, RESERVED, LEA, TRAP)

illegal = (RTI, RESERVED)


def decode(instruction):
    """
    Split an instruction word into its opcode variant and operand
    fields.
    """
    instruction = lc_bin(instruction)
    opcode = instruction >> 12
    reg1 = (instruction & 0b0000111000000000) >> 9
    reg2 = (instruction & 0b0000000111000000) >> 6
    pc_offset9 = sext(instruction & 0b0000000111111111, 9)
    offset6 = sext(instruction & 0b0000000000111111, 6)
    if opcode in (0b0001, 0b0101): # ADD, AND
        if instruction & 0b0000000000100000:
            sr2, imm5 = None, sext(instruction & 0b0000000000011111, 5)
        else:
            sr2, imm5 = instruction & 0b0000000000000111, None
        if opcode == 0b0001:
            return ADD(reg1, reg2, sr2, imm5)
        return AND(reg1, reg2, sr2, imm5)
    elif opcode == 0b0000:
        return BR(bool(instruction & 0b0000100000000000),
                  bool(instruction & 0b0000010000000000),
                  bool(instruction & 0b0000001000000000),
                  pc_offset9)
    elif opcode == 0b0010:
        return LD(reg1, pc_offset9)
    elif opcode == 0b0011:
        return ST(reg1, pc_offset9)
    elif opcode == 0b0100:
        if instruction & 0b0000100000000000:
            return JSR(sext(instruction & 0b0000011111111111, 11))
        return JSRR(reg2)
    elif opcode == 0b0110:
        return LDR(reg1, reg2, offset6)
    elif opcode == 0b0111:
        return STR(reg1, reg2, offset6)
    elif opcode == 0b1000:
        return RTI()
    elif opcode == 0b1001:
        return NOT(reg1, reg2)
    elif opcode == 0b1010:
        return LDI(reg1, pc_offset9)
    elif opcode == 0b1011:
        return STI(reg1, pc_offset9)
    elif opcode == 0b1100:
        return JMP(reg2)
    elif opcode == 0b1101:
        return RESERVED(instruction)
    elif opcode == 0b1110:
        return LEA(reg1, pc_offset9)
    else:
        return TRAP(instruction & 0b0000000011111111)


def disassemble(word, location=None):
    """
    Render a word as LC3 assembly. PC-relative targets are shown as
    absolute addresses when the word's location is known.
    """
    instruction = decode(word)
    kind = type(instruction)
    name = kind.__name__

    def target(offset):
        if location is None:
            return "#%d" % lc_int(offset)
        return lc_hex(plus(location + 1, offset))

    if kind is BR:
        flags = "".join(flag for flag, bit in
                        zip("nzp", instruction[:3]) if bit)
        if not flags:
            return "NOP"
        return "BR%s %s" % (flags, target(instruction.offset9))
    elif kind in (ADD, AND):
        if instruction.imm5 is None:
            return "%s R%d, R%d, R%d" % (name, instruction.dr,
                                         instruction.sr1, instruction.sr2)
        return "%s R%d, R%d, #%d" % (name, instruction.dr, instruction.sr1,
                                     lc_int(instruction.imm5))
    elif kind in (LD, LDI, LEA, ST, STI):
        return "%s R%d, %s" % (name, instruction[0], target(instruction[1]))
    elif kind in (LDR, STR):
        return "%s R%d, R%d, #%d" % (name, instruction[0], instruction[1],
                                     lc_int(instruction[2]))
    elif kind is JSR:
        return "JSR %s" % target(instruction.offset11)
    elif kind is JSRR:
        return "JSRR R%d" % instruction.base
    elif kind is JMP:
        if instruction.base == 7:
            return "RET"
        return "JMP R%d" % instruction.base
    elif kind is NOT:
        return "NOT R%d, R%d" % (instruction.dr, instruction.sr)
    elif kind is TRAP:
        if instruction.vector in trap_names:
            return trap_names[instruction.vector]
        return "TRAP x%02X" % instruction.vector
    elif kind is RESERVED:
        return ".FILL %s ; reserved opcode" % lc_hex(instruction.word)
    else:
        return "RTI"


class LC3(object):
    """
    The LC3 Computer. Owns the register file and memory and executes
    LC3 machine code until HALT or a fault.
    """

    def __init__(self, console=None, kernel=None):
        self.kernel = kernel
        self.console = console
        self.stream = None
        # Functions for executing instructions:
        self.apply = {
            BR: self.BR,
            ADD: self.ADD,
            LD: self.LD,
            ST: self.ST,
            JSR: self.JSR,
            JSRR: self.JSRR,
            AND: self.AND,
            LDR: self.LDR,
            STR: self.STR,
            NOT: self.NOT,
            LDI: self.LDI,
            STI: self.STI,
            JMP: self.JMP, # and RET
            LEA: self.LEA,
            TRAP: self.TRAP,
        }
        unhandled = set(variants) - set(illegal) - set(self.apply)
        if unhandled:
            raise TypeError("no handler for %s" % ", ".join(
                sorted(kind.__name__ for kind in unhandled)))
        # Native TRAP service routines:
        self.service = {
            TRAP_GETC: self.GETC,
            TRAP_OUT: self.OUT,
            TRAP_PUTS: self.PUTS,
            TRAP_IN: self.IN,
            TRAP_PUTSP: self.PUTSP,
            TRAP_HALT: self.HALT,
        }
        self.initialize()

    def initialize(self):
        self.filename = ""
        self.debug = False
        self.orig = HEX(USER_SPACE)
        self.cont = False
        self.halted = False
        self.instruction_count = 0
        self.memory = Memory(self.console)
        self.registers = RegisterFile(USER_SPACE)

    def attach(self, console):
        self.console = console
        self.memory.console = console

    def reset_registers(self):
        for i in range(8):
            self.set_register(i, 0)
        self.set_nzp(0)
        self.instruction_count = 0
        self.halted = False

    #### Register and memory access. Every write is traced in debug mode.

    def get_nzp(self):
        return self.registers.nzp()

    def set_nzp(self, value):
        self.registers.set_flags(value)
        if self.debug:
            self.Print("    NZP <=", "NZP"[self.get_nzp().index(1)])

    def get_pc(self):
        return self.registers.pc

    def set_pc(self, value):
        self.registers.write(PC, value)
        if self.debug:
            self.Print("    PC <= %s" % lc_hex(value))

    def increment_pc(self, value=1):
        self.set_pc(plus(self.get_pc(), value))

    def get_register(self, position):
        return self.registers.read(position)

    def set_register(self, position, value):
        self.registers.write(position, value)
        if self.debug:
            self.Print("    R%d <= %s" % (position, lc_hex(value)))

    def get_memory(self, location):
        return self.memory.read(location)

    def set_memory(self, location, value):
        self.memory.write(location, value)
        if self.debug:
            self.Print("    memory[%s] <= %s" % (lc_hex(location), lc_hex(value)))

    #### End of access methods

    def Print(self, *args, end="\n"):
        if self.kernel:
            self.kernel.Print(*args, end=end)
        else:
            print(*args, end=end, file=self.stream)

    def Error(self, string):
        if self.kernel:
            self.kernel.Error(string)
        else:
            sys.stderr.write(string)

    def run(self):
        self.cont = True
        self.halted = False
        try:
            while self.cont:
                self.step()
        finally:
            self.cont = False

    def step(self):
        pc = self.get_pc()
        word = self.get_memory(pc)
        self.instruction_count += 1
        instruction = decode(word)
        if isinstance(instruction, illegal):
            self.cont = False
            raise IllegalInstruction(pc, word)
        self.increment_pc()
        if self.debug:
            self.Print("(%s) %s (PC*: %s) [%s]" % (
                self.instruction_count,
                disassemble(word, pc),
                lc_hex(self.get_pc()),
                lc_hex(word)))
        self.apply[type(instruction)](instruction)

    def dump_registers(self):
        self.Print()
        self.Print("=" * 60)
        self.Print("Registers:")
        self.Print("=" * 60)
        self.Print("PC:", lc_hex(self.get_pc()))
        for r,v in zip("NZP", self.get_nzp()):
            self.Print("%s: %s" % (r,v), end=" ")
        self.Print()
        count = 1
        for key in range(8):
            self.Print("R%d: %s" % (key, lc_hex(self.get_register(key))), end=" ")
            if count % 4 == 0:
                self.Print()
            count += 1

    def report(self):
        self.Print("=" * 60)
        if self.halted:
            self.Print("Computation completed")
        else:
            self.Print("Computation stopped")
        self.Print("=" * 60)
        self.Print("Instructions:", self.instruction_count)
        self.dump_registers()

    #### Instructions

    def BR(self, instruction):
        nzp = (instruction.n << 2) | (instruction.z << 1) | instruction.p
        if nzp & self.registers.cond:
            self.set_pc(plus(self.get_pc(), instruction.offset9))
            if self.debug:
                self.Print("    True - branching to", lc_hex(self.get_pc()))
        elif self.debug:
            self.Print("    False - continuing...")

    def ADD(self, instruction):
        if instruction.imm5 is None:
            operand = self.get_register(instruction.sr2)
        else:
            operand = instruction.imm5
        self.set_register(instruction.dr,
                          plus(self.get_register(instruction.sr1), operand))
        self.set_nzp(self.get_register(instruction.dr))

    def AND(self, instruction):
        if instruction.imm5 is None:
            operand = self.get_register(instruction.sr2)
        else:
            operand = instruction.imm5
        self.set_register(instruction.dr,
                          self.get_register(instruction.sr1) & operand)
        self.set_nzp(self.get_register(instruction.dr))

    def NOT(self, instruction):
        self.set_register(instruction.dr, lc_bin(~self.get_register(instruction.sr)))
        self.set_nzp(self.get_register(instruction.dr))

    def LD(self, instruction):
        location = plus(self.get_pc(), instruction.offset9)
        self.set_register(instruction.dr, self.get_memory(location))
        self.set_nzp(self.get_register(instruction.dr))

    def LDI(self, instruction):
        location = plus(self.get_pc(), instruction.offset9)
        memory1 = self.get_memory(location)
        memory2 = self.get_memory(memory1)
        if self.debug:
            self.Print("  Reading memory[%s] (%s) =>" % (lc_hex(location), lc_hex(memory1)))
            self.Print("  Reading memory[%s] (%s) =>" % (lc_hex(memory1), lc_hex(memory2)))
        self.set_register(instruction.dr, memory2)
        self.set_nzp(self.get_register(instruction.dr))

    def LDR(self, instruction):
        location = plus(self.get_register(instruction.base), instruction.offset6)
        self.set_register(instruction.dr, self.get_memory(location))
        self.set_nzp(self.get_register(instruction.dr))

    def LEA(self, instruction):
        self.set_register(instruction.dr, plus(self.get_pc(), instruction.offset9))
        self.set_nzp(self.get_register(instruction.dr))

    def ST(self, instruction):
        self.set_memory(plus(self.get_pc(), instruction.offset9),
                        self.get_register(instruction.sr))

    def STI(self, instruction):
        location = self.get_memory(plus(self.get_pc(), instruction.offset9))
        self.set_memory(location, self.get_register(instruction.sr))

    def STR(self, instruction):
        self.set_memory(plus(self.get_register(instruction.base), instruction.offset6),
                        self.get_register(instruction.sr))

    def JMP(self, instruction):
        self.set_pc(self.get_register(instruction.base))

    def JSR(self, instruction):
        temp = self.get_pc()
        self.set_pc(plus(self.get_pc(), instruction.offset11))
        self.set_register(7, temp)

    def JSRR(self, instruction):
        temp = self.get_pc()
        self.set_pc(self.get_register(instruction.base))
        self.set_register(7, temp)

    def TRAP(self, instruction):
        vector = instruction.vector
        if vector not in self.service:
            self.cont = False
            raise IllegalTrap(plus(self.get_pc(), -1), vector)
        self.set_register(7, self.get_pc())
        # serviced natively; the trap table in low memory is not read
        self.service[vector]()
        self.set_pc(self.get_register(7))

    #### TRAP service routines

    def getc(self):
        if self.console is None:
            raise ConsoleError("no console attached")
        return self.console.read_char() & 0xFF

    def putc(self, code):
        if self.console is None:
            raise ConsoleError("no console attached")
        self.console.write_char(code & 0xFF)

    def flush(self):
        if self.console is not None:
            self.console.flush()

    def GETC(self):
        self.set_register(0, self.getc())

    def OUT(self):
        self.putc(self.get_register(0))
        self.flush()

    # The string walks read the cells directly so that a string running
    # over KBSR/KBDR does not consume a pending key.

    def PUTS(self):
        location = self.get_register(0)
        for _ in range(len(self.memory)):
            memory = self.memory.cells[location]
            if memory == 0:
                break
            self.putc(memory)
            location = plus(location, 1)
        self.flush()

    def PUTSP(self):
        location = self.get_register(0)
        for _ in range(len(self.memory)):
            memory = self.memory.cells[location]
            if memory & 0x00FF == 0:
                break
            self.putc(memory)
            if memory >> 8 == 0:
                break
            self.putc(memory >> 8)
            location = plus(location, 1)
        self.flush()

    def IN(self):
        for char in IN_PROMPT:
            self.putc(ord(char))
        self.flush()
        char = self.getc()
        self.putc(char)
        self.flush()
        self.set_register(0, char)

    def HALT(self):
        self.flush()
        self.cont = False
        self.halted = True
