from chipcore.errors import ChipCoreError, RomError, RomNotFoundError, RomTooLargeError, StackError, StackOverflowError, StackUnderflowError
from chipcore.interpreter import CpuSnapshot, Interpreter
from chipcore.machine import Machine
from chipcore.memory import Memory
from chipcore.opcode import Instruction, Opcode, classify, decode
