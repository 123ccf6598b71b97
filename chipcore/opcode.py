from enum import Enum
from typing import NamedTuple

# Constants
TYPE_MASK = 0xF000
X_MASK = 0x0F00
Y_MASK = 0x00F0
N_MASK = 0x000F
NN_MASK = 0x00FF
NNN_MASK = 0x0FFF
CLEAR_SCREEN_OPCODE = 0x00E0
RETURN_FROM_SUBROUTINE_OPCODE = 0x00EE


class Opcode(NamedTuple):
    """
    A single 16-bit instruction word split into its fields.
    """
    data: int
    type: int
    x: int
    y: int
    n: int
    nn: int
    nnn: int

    def __str__(self) -> str:
        return f"{self.data:04x}"


class Instruction(Enum):
    SYS = "0nnn"
    CLS = "00e0"
    RET = "00ee"
    JP = "1nnn"
    CALL = "2nnn"
    SE_VX_NN = "3xnn"
    SNE_VX_NN = "4xnn"
    SE_VX_VY = "5xy0"
    LD_VX_NN = "6xnn"
    ADD_VX_NN = "7xnn"
    LD_VX_VY = "8xy0"
    OR = "8xy1"
    AND = "8xy2"
    XOR = "8xy3"
    ADD_VX_VY = "8xy4"
    SUB = "8xy5"
    SHR = "8xy6"
    SUBN = "8xy7"
    SHL = "8xye"
    SNE_VX_VY = "9xy0"
    LD_I_NNN = "annn"
    JP_V0_NNN = "bnnn"
    RND = "cxnn"
    DRW = "dxyn"
    SKP = "ex9e"
    SKNP = "exa1"
    LD_VX_DT = "fx07"
    LD_VX_K = "fx0a"
    LD_DT_VX = "fx15"
    LD_ST_VX = "fx18"
    ADD_I_VX = "fx1e"
    LD_F_VX = "fx29"
    LD_B_VX = "fx33"
    LD_I_VX = "fx55"
    LD_VX_I = "fx65"
    UNKNOWN = "????"


ARITHMETIC_INSTRUCTIONS = {
    0x0: Instruction.LD_VX_VY,
    0x1: Instruction.OR,
    0x2: Instruction.AND,
    0x3: Instruction.XOR,
    0x4: Instruction.ADD_VX_VY,
    0x5: Instruction.SUB,
    0x6: Instruction.SHR,
    0x7: Instruction.SUBN,
    0xE: Instruction.SHL,
}

KEY_INSTRUCTIONS = {
    0x9E: Instruction.SKP,
    0xA1: Instruction.SKNP,
}

MISC_INSTRUCTIONS = {
    0x07: Instruction.LD_VX_DT,
    0x0A: Instruction.LD_VX_K,
    0x15: Instruction.LD_DT_VX,
    0x18: Instruction.LD_ST_VX,
    0x1E: Instruction.ADD_I_VX,
    0x29: Instruction.LD_F_VX,
    0x33: Instruction.LD_B_VX,
    0x55: Instruction.LD_I_VX,
    0x65: Instruction.LD_VX_I,
}

# Instructions identified by the type nibble alone.
SIMPLE_INSTRUCTIONS = {
    0x1: Instruction.JP,
    0x2: Instruction.CALL,
    0x3: Instruction.SE_VX_NN,
    0x4: Instruction.SNE_VX_NN,
    0x5: Instruction.SE_VX_VY,
    0x6: Instruction.LD_VX_NN,
    0x7: Instruction.ADD_VX_NN,
    0x9: Instruction.SNE_VX_VY,
    0xA: Instruction.LD_I_NNN,
    0xB: Instruction.JP_V0_NNN,
    0xC: Instruction.RND,
    0xD: Instruction.DRW,
}


def decode(data: int) -> Opcode:
    """
    Split a 16-bit word into the opcode fields.  Every word decodes, whether or not an instruction matches it.
    :param data: The instruction word.
    :return: The decoded opcode.
    """
    data &= 0xFFFF
    return Opcode(
        data=data,
        type=(data & TYPE_MASK) >> 12,
        x=(data & X_MASK) >> 8,
        y=(data & Y_MASK) >> 4,
        n=data & N_MASK,
        nn=data & NN_MASK,
        nnn=data & NNN_MASK,
    )


def classify(opcode: Opcode) -> Instruction:
    """
    Identify which instruction the opcode encodes.
    :param opcode: The decoded opcode.
    :return: The matching instruction, or Instruction.UNKNOWN if nothing matches.
    """
    if opcode.type in SIMPLE_INSTRUCTIONS:
        return SIMPLE_INSTRUCTIONS[opcode.type]
    elif opcode.data == CLEAR_SCREEN_OPCODE:
        return Instruction.CLS
    elif opcode.data == RETURN_FROM_SUBROUTINE_OPCODE:
        return Instruction.RET
    elif opcode.type == 0x0:
        return Instruction.SYS
    elif opcode.type == 0x8:
        return ARITHMETIC_INSTRUCTIONS.get(opcode.n, Instruction.UNKNOWN)
    elif opcode.type == 0xE:
        return KEY_INSTRUCTIONS.get(opcode.nn, Instruction.UNKNOWN)
    elif opcode.type == 0xF:
        return MISC_INSTRUCTIONS.get(opcode.nn, Instruction.UNKNOWN)
    return Instruction.UNKNOWN
