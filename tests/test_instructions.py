import pytest

from lc3vm.lc3 import FLAG_N, FLAG_P, FLAG_Z, IllegalInstruction
from lc3vm.loader import load_image


def snapshot(lc3):
    registers = lc3.registers
    return list(registers.general), registers.pc, registers.cond


def test_add_add_halt_program(lc3):
    load_image(lc3, bytes([0x30, 0x00,
                           0x10, 0x25,   # ADD R0, R0, #5
                           0x10, 0x25,   # ADD R0, R0, #5
                           0xF0, 0x25])) # HALT
    lc3.run()
    assert lc3.get_register(0) == 10
    assert lc3.instruction_count == 3
    assert lc3.halted
    assert not lc3.cont


@pytest.mark.parametrize("a, b, total, flag", [
    (3, 4, 7, FLAG_P),
    (0x7FFF, 1, 0x8000, FLAG_N),
    (0xFFFF, 1, 0, FLAG_Z),
    (0x8000, 0x8000, 0, FLAG_Z),
])
def test_add_register_wraps(lc3, program, a, b, total, flag):
    lc3.set_register(0, a)
    lc3.set_register(1, b)
    program([0x1401]).step()         # ADD R2, R0, R1
    assert lc3.get_register(2) == total
    assert lc3.registers.cond == flag


def test_add_negative_immediate(lc3, program):
    program([0x1030]).step()         # ADD R0, R0, #-16
    assert lc3.get_register(0) == 0xFFF0
    assert lc3.registers.cond == FLAG_N


def test_and(lc3, program):
    lc3.set_register(1, 0xF0F0)
    lc3.set_register(2, 0x3C3C)
    program([0x5642, 0x507F]).step() # AND R3, R1, R2
    assert lc3.get_register(3) == 0x3030
    assert lc3.registers.cond == FLAG_P
    lc3.set_register(0, 0x8123)
    lc3.step()                       # AND R0, R1, #-1
    assert lc3.get_register(0) == 0xF0F0
    assert lc3.registers.cond == FLAG_N


def test_and_zero_clears(lc3, program):
    lc3.set_register(0, 0x1234)
    program([0x5020]).step()         # AND R0, R0, #0
    assert lc3.get_register(0) == 0
    assert lc3.registers.cond == FLAG_Z


def test_not(lc3, program):
    lc3.set_register(0, 0x00FF)
    program([0x923F]).step()         # NOT R1, R0
    assert lc3.get_register(1) == 0xFF00
    assert lc3.registers.cond == FLAG_N


def test_ld_is_relative_to_incremented_pc(lc3, program):
    program([0x2202, 0, 0, 0x00AB]).step()   # LD R1, #2
    assert lc3.get_register(1) == 0x00AB
    assert lc3.registers.cond == FLAG_P


def test_ldi_follows_pointer(lc3, program):
    lc3.memory.write(0x4000, 0x8001)
    program([0xA400, 0x4000]).step() # LDI R2, #0
    assert lc3.get_register(2) == 0x8001
    assert lc3.registers.cond == FLAG_N


def test_ldr_negative_offset(lc3, program):
    lc3.set_register(4, 0x4001)
    lc3.memory.write(0x4000, 0)
    lc3.set_register(3, 9)
    program([0x673F]).step()         # LDR R3, R4, #-1
    assert lc3.get_register(3) == 0
    assert lc3.registers.cond == FLAG_Z


def test_lea_does_not_dereference(lc3, program):
    program([0xE003]).step()         # LEA R0, #3
    assert lc3.get_register(0) == 0x3004
    assert lc3.registers.cond == FLAG_P


def test_lea_wraps_at_top_of_memory(lc3, program):
    program([0xE1FF], origin=0xFFFF).step()  # LEA R0, #-1
    assert lc3.get_pc() == 0x0000
    assert lc3.get_register(0) == 0xFFFF


def test_stores_leave_flags_alone(lc3, program):
    lc3.set_register(0, 0x8000)
    lc3.set_register(1, 0x5000)
    program([0x3003,                 # ST R0, #3
             0xB001,                 # STI R0, #1
             0x7042,                 # STR R0, R1, #2
             0x6000,
             0])
    lc3.step()
    assert lc3.memory.read(0x3004) == 0x8000
    lc3.step()
    assert lc3.memory.read(0x6000) == 0x8000
    lc3.step()
    assert lc3.memory.read(0x5002) == 0x8000
    assert lc3.registers.cond == FLAG_Z


@pytest.mark.parametrize("word, cond, taken", [
    (0x0401, FLAG_Z, True),          # BRz
    (0x0401, FLAG_P, False),
    (0x0801, FLAG_N, True),          # BRn
    (0x0801, FLAG_Z, False),
    (0x0201, FLAG_P, True),          # BRp
    (0x0C01, FLAG_P, False),         # BRnz
    (0x0E01, FLAG_N, True),          # BRnzp
    (0x0E01, FLAG_Z, True),
    (0x0E01, FLAG_P, True),
    (0x0001, FLAG_Z, False),         # no condition bits
])
def test_branch(lc3, program, word, cond, taken):
    program([word])
    lc3.registers.cond = cond
    lc3.step()
    assert lc3.get_pc() == (0x3002 if taken else 0x3001)
    assert lc3.registers.cond == cond


def test_branch_backwards(lc3, program):
    program([0x0FFF]).step()         # BRnzp #-1
    assert lc3.get_pc() == 0x3000


def test_jmp_and_ret(lc3, program):
    lc3.set_register(2, 0x4000)
    lc3.set_register(7, 0x5000)
    program([0xC080]).step()         # JMP R2
    assert lc3.get_pc() == 0x4000
    lc3.memory.write(0x4000, 0xC1C0)
    lc3.step()                       # RET
    assert lc3.get_pc() == 0x5000


def test_jsr_saves_return_address(lc3, program):
    program([0x4804]).step()         # JSR #4
    assert lc3.get_register(7) == 0x3001
    assert lc3.get_pc() == 0x3005


def test_jsrr_saves_return_address(lc3, program):
    lc3.set_register(3, 0x4400)
    program([0x40C0]).step()         # JSRR R3
    assert lc3.get_register(7) == 0x3001
    assert lc3.get_pc() == 0x4400


def test_jsrr_r7_jumps_to_old_r7(lc3, program):
    lc3.set_register(7, 0x4400)
    program([0x41C0]).step()         # JSRR R7
    assert lc3.get_pc() == 0x4400
    assert lc3.get_register(7) == 0x3001


def test_subroutine_call_and_return(lc3, program):
    program([0x4802,                 # JSR SUB
             0xF025,                 # HALT
             0,
             0x1025,                 # SUB: ADD R0, R0, #5
             0xC1C0])                # RET
    lc3.run()
    assert lc3.get_register(0) == 5
    assert lc3.get_pc() == 0x3002
    assert lc3.instruction_count == 4


@pytest.mark.parametrize("word", [0xD000, 0xDFFF, 0x8000])
def test_illegal_instruction_leaves_registers_untouched(lc3, program, word):
    for i in range(8):
        lc3.set_register(i, 0x1111 * i)
    program([word])
    lc3.registers.cond = FLAG_N
    before = snapshot(lc3)
    with pytest.raises(IllegalInstruction) as info:
        lc3.run()
    assert info.value.address == 0x3000
    assert info.value.instruction == word
    assert snapshot(lc3) == before
    assert not lc3.cont
    assert not lc3.halted


def test_fault_ends_run_midway(lc3, program):
    program([0x1025, 0xD000, 0x1025])
    with pytest.raises(IllegalInstruction) as info:
        lc3.run()
    assert info.value.address == 0x3001
    assert lc3.get_register(0) == 5
    assert lc3.get_pc() == 0x3001
    assert "x3001" in str(info.value)


def test_debug_trace(lc3, program, capsys):
    lc3.debug = True
    program([0x1025]).step()
    out = capsys.readouterr().out
    assert "ADD R0, R0, #5" in out
    assert "R0 <= x0005" in out
    assert "NZP <= P" in out
