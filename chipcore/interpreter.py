import logging
import random

import numpy as np

from typing import Callable, Dict, List, NamedTuple, Optional, Tuple

from chipcore.errors import StackOverflowError, StackUnderflowError
from chipcore.memory import ADDRESS_MASK, CHARACTER_SIZE, FONT_START_ADDRESS, GAME_START_ADDRESS, Memory
from chipcore.opcode import Instruction, Opcode, classify, decode

logger = logging.getLogger(__name__)

# Constants
BYTE_MASK = 255
FLAG_REGISTER = 15
REGISTER_COUNT = 16
KEY_COUNT = 16
STACK_SIZE = 16
SCREEN_WIDTH = 64
SCREEN_HEIGHT = 32
SCREEN_SIZE = SCREEN_WIDTH * SCREEN_HEIGHT
SPRITE_WIDTH = 8


class CpuSnapshot(NamedTuple):
    """
    A consistent, immutable copy of the debugger-visible CPU state taken between two steps.
    """
    program_counter: int
    register_i: int
    registers: bytes
    opcode: Optional[Opcode]
    delay: int
    sound: int
    stack_depth: int


class Interpreter:
    """
    The CHIP-8 processor: registers, timers, stack, keypad latch and framebuffer.
    Memory is owned by the caller and handed to every step.

    Register 15 (VF) is an ordinary register which the arithmetic and drawing instructions also use as their flag.
    """
    def __init__(self, rng: Optional[random.Random] = None):
        """
        Constructor.
        :param rng: The random number generator used by the RND instruction, a fresh one is seeded if not provided.
        """
        self.random = rng if rng is not None else random.Random()
        self.registers = bytearray(REGISTER_COUNT)
        self.register_i = 0
        self.delay = 0
        self.sound = 0
        self.program_counter = GAME_START_ADDRESS
        self.stack: List[int] = []
        self.keypad = bytearray(KEY_COUNT)
        self.pixels = np.zeros(SCREEN_SIZE, np.ubyte)
        self.opcode: Optional[Opcode] = None
        self.instruction: Optional[Instruction] = None

        self.handlers: Dict[Instruction, Callable[[Opcode, Memory], None]] = {
            Instruction.SYS: self.opcode_machine_code_routine,
            Instruction.CLS: self.opcode_clear_screen,
            Instruction.RET: self.opcode_return_from_subroutine,
            Instruction.JP: self.opcode_goto,
            Instruction.CALL: self.opcode_call_subroutine,
            Instruction.SE_VX_NN: self.opcode_if_equal,
            Instruction.SNE_VX_NN: self.opcode_if_not_equal,
            Instruction.SE_VX_VY: self.opcode_if_register_equal,
            Instruction.LD_VX_NN: self.opcode_set_register_value,
            Instruction.ADD_VX_NN: self.opcode_add_value,
            Instruction.LD_VX_VY: self.opcode_set_register_value_other_register,
            Instruction.OR: self.opcode_set_register_bitwise_or,
            Instruction.AND: self.opcode_set_register_bitwise_and,
            Instruction.XOR: self.opcode_set_register_bitwise_xor,
            Instruction.ADD_VX_VY: self.opcode_add_other_register,
            Instruction.SUB: self.opcode_subtract_from_first_register,
            Instruction.SHR: self.opcode_bit_shift_right,
            Instruction.SUBN: self.opcode_subtract_from_second_register,
            Instruction.SHL: self.opcode_bit_shift_left,
            Instruction.SNE_VX_VY: self.opcode_if_register_not_equal,
            Instruction.LD_I_NNN: self.opcode_set_register_i,
            Instruction.JP_V0_NNN: self.opcode_goto_addition,
            Instruction.RND: self.opcode_random_bitwise_and,
            Instruction.DRW: self.opcode_draw_sprite,
            Instruction.SKP: self.opcode_if_key_pressed,
            Instruction.SKNP: self.opcode_if_key_not_pressed,
            Instruction.LD_VX_DT: self.opcode_get_delay_timer,
            Instruction.LD_VX_K: self.opcode_wait_for_key_press,
            Instruction.LD_DT_VX: self.opcode_set_delay_timer,
            Instruction.LD_ST_VX: self.opcode_set_sound_timer,
            Instruction.ADD_I_VX: self.opcode_register_i_addition,
            Instruction.LD_F_VX: self.opcode_set_register_i_to_hex_sprite_address,
            Instruction.LD_B_VX: self.opcode_binary_coded_decimal,
            Instruction.LD_I_VX: self.opcode_register_dump,
            Instruction.LD_VX_I: self.opcode_register_load,
            Instruction.UNKNOWN: self.opcode_unknown,
        }

    def reset(self) -> None:
        """
        Reset the state of the processor.
        """
        self.registers[:] = bytes(REGISTER_COUNT)
        self.register_i = 0
        self.delay = 0
        self.sound = 0
        self.program_counter = GAME_START_ADDRESS
        self.stack.clear()
        self.keypad[:] = bytes(KEY_COUNT)
        self.pixels.fill(0)
        self.opcode = None
        self.instruction = None

    # region State
    @property
    def display(self) -> np.ndarray:
        """
        A read-only view of the framebuffer, one cell per pixel at index x + y * 64.
        """
        view = self.pixels.view()
        view.flags.writeable = False
        return view

    @property
    def stack_pointer(self) -> int:
        return len(self.stack)

    @property
    def sound_active(self) -> bool:
        return self.sound > 0

    def snapshot(self) -> CpuSnapshot:
        return CpuSnapshot(
            program_counter=self.program_counter,
            register_i=self.register_i,
            registers=bytes(self.registers),
            opcode=self.opcode,
            delay=self.delay,
            sound=self.sound,
            stack_depth=len(self.stack),
        )
    # endregion

    # region Keypad
    @staticmethod
    def check_key(key: int) -> None:
        if not 0 <= key < KEY_COUNT:
            raise ValueError(f"Key {key} is outside of the keypad range 0x0-0xf.")

    def press_key(self, key: int) -> None:
        self.check_key(key)
        self.keypad[key] = 1

    def release_key(self, key: int) -> None:
        self.check_key(key)
        self.keypad[key] = 0

    def clear_keys(self) -> None:
        """
        Release every key.  The host calls this once per frame before re-applying the keys which are still held.
        """
        for key in range(KEY_COUNT):
            self.keypad[key] = 0
    # endregion

    # region Timers
    def decrement_delay_timer(self) -> None:
        """
        Decrement the value of the delay timer, stopping at 0.
        """
        if self.delay > 0:
            self.delay -= 1

    def decrement_sound_timer(self) -> None:
        """
        Decrement the value of the sound timer, stopping at 0.
        """
        if self.sound > 0:
            self.sound -= 1
            if self.sound == 0:
                logger.debug("Sound timer expired.")
    # endregion

    # region Helpers
    @staticmethod
    def bounded_add(augend: int, addend: int) -> Tuple[int, int]:
        """
        Add two values, bounded by the confines of a byte.
        :param augend: The integer to add to.
        :param addend: The integer to add.
        :return: The result of the addition and the carry (1 if the sum did not fit in a byte, 0 otherwise).
        """
        sum_of_values = augend + addend
        return sum_of_values & BYTE_MASK, 1 if sum_of_values > BYTE_MASK else 0

    @staticmethod
    def bounded_subtract(minuend: int, subtrahend: int) -> Tuple[int, int]:
        """
        Subtract the subtrahend from the minuend, bounded by the confines of a byte.
        :param minuend: The integer from which to subtract.
        :param subtrahend: The integer to subtract.
        :return: The result of the subtraction and the not borrow (1 if there was no borrow, 0 otherwise).
        """
        difference = minuend - subtrahend
        result = difference % 256
        not_borrow = 1 if difference >= 0 else 0
        return result, not_borrow

    def skip_next_instruction(self) -> None:
        self.program_counter = (self.program_counter + 2) & ADDRESS_MASK
        logger.debug("Instruction skipped.")
    # endregion

    # region Cycle
    def step(self, memory: Memory) -> None:
        """
        Fetch, decode and execute a single instruction.
        :param memory: The memory holding the program.
        """
        self.fetch(memory)
        self.execute(memory)

    def fetch(self, memory: Memory) -> Opcode:
        """
        Read the instruction at the program counter and advance the program counter past it.
        :param memory: The memory holding the program.
        :return: The decoded opcode.
        """
        self.opcode = decode(memory.read_word(self.program_counter))
        self.instruction = classify(self.opcode)
        self.program_counter = (self.program_counter + 2) & ADDRESS_MASK
        return self.opcode

    def execute(self, memory: Memory) -> None:
        """
        Route the fetched opcode to the method which executes it.
        :param memory: The memory available to the instruction.
        """
        self.handlers[self.instruction](self.opcode, memory)
    # endregion

    # region Opcodes
    def opcode_unknown(self, opcode: Opcode, memory: Memory) -> None:
        logger.error(f"Unimplemented / Invalid Opcode: {opcode} at {hex((self.program_counter - 2) & ADDRESS_MASK)}.")

    def opcode_machine_code_routine(self, opcode: Opcode, memory: Memory) -> None:
        logger.warning(f"Execute Opcode {opcode}: Ignoring call to machine code routine at {hex(opcode.nnn)}.")

    def opcode_clear_screen(self, opcode: Opcode, memory: Memory) -> None:
        """
        Clear the screen.
        """
        self.pixels.fill(0)
        logger.debug(f"Execute Opcode {opcode}: Clearing the screen.")

    def opcode_return_from_subroutine(self, opcode: Opcode, memory: Memory) -> None:
        """
        Return from the current subroutine.
        :raises StackUnderflowError: If there is no subroutine to return from.
        """
        if not self.stack:
            address = (self.program_counter - 2) & ADDRESS_MASK
            logger.error(f"Tried to return from a subroutine at {hex(address)} when the stack is empty.")
            raise StackUnderflowError(address)

        self.program_counter = self.stack.pop()
        logger.debug(f"Execute Opcode {opcode}: Return from subroutine, continue at {hex(self.program_counter)}.")

    def opcode_goto(self, opcode: Opcode, memory: Memory) -> None:
        self.program_counter = opcode.nnn
        logger.debug(f"Execute Opcode {opcode}: Jump to address {hex(opcode.nnn)}.")

    def opcode_call_subroutine(self, opcode: Opcode, memory: Memory) -> None:
        """
        Call the subroutine at the given address.
        :raises StackOverflowError: If the stack already holds the maximum number of return addresses.
        """
        if len(self.stack) >= STACK_SIZE:
            logger.error(f"Tried to call the subroutine at {hex(opcode.nnn)} with a full stack.")
            raise StackOverflowError(opcode.nnn, STACK_SIZE)

        self.stack.append(self.program_counter)
        self.program_counter = opcode.nnn
        logger.debug(f"Execute Opcode {opcode}: Call subroutine at address {hex(opcode.nnn)}.")

    def opcode_if_equal(self, opcode: Opcode, memory: Memory) -> None:
        """
        Skip the next instruction if the value of the provided register is equal to the provided value.
        """
        register_value = self.registers[opcode.x]
        logger.debug(f"Execute Opcode {opcode}: Skip next instruction if register {opcode.x}'s value ({register_value}) is {opcode.nn}.")
        if register_value == opcode.nn:
            self.skip_next_instruction()

    def opcode_if_not_equal(self, opcode: Opcode, memory: Memory) -> None:
        """
        Skip the next instruction if the value of the provided register is not equal to the provided value.
        """
        register_value = self.registers[opcode.x]
        logger.debug(f"Execute Opcode {opcode}: Skip next instruction if register {opcode.x}'s value ({register_value}) is not {opcode.nn}.")
        if register_value != opcode.nn:
            self.skip_next_instruction()

    def opcode_if_register_equal(self, opcode: Opcode, memory: Memory) -> None:
        first_register_value = self.registers[opcode.x]
        second_register_value = self.registers[opcode.y]
        logger.debug(f"Execute Opcode {opcode}: Skip next instruction if register {opcode.x}'s value ({first_register_value}) is equal to register {opcode.y}'s value ({second_register_value}).")
        if first_register_value == second_register_value:
            self.skip_next_instruction()

    def opcode_set_register_value(self, opcode: Opcode, memory: Memory) -> None:
        self.registers[opcode.x] = opcode.nn
        logger.debug(f"Execute Opcode {opcode}: Set the value of register {opcode.x} to {opcode.nn}.")

    def opcode_add_value(self, opcode: Opcode, memory: Memory) -> None:
        """
        Adds the provided value to the value of the provided register.  The carry flag (register 15) is not set.
        """
        self.registers[opcode.x] = (self.registers[opcode.x] + opcode.nn) & BYTE_MASK
        logger.debug(f"Execute Opcode {opcode}: Add {opcode.nn} to the value of register {opcode.x}.")

    def opcode_set_register_value_other_register(self, opcode: Opcode, memory: Memory) -> None:
        self.registers[opcode.x] = self.registers[opcode.y]
        logger.debug(f"Execute Opcode {opcode}: Set the value of register {opcode.x} to register {opcode.y}'s value ({self.registers[opcode.y]}).")

    def opcode_set_register_bitwise_or(self, opcode: Opcode, memory: Memory) -> None:
        result = self.registers[opcode.x] | self.registers[opcode.y]
        self.registers[opcode.x] = result
        logger.debug(f"Execute Opcode {opcode}: Set register {opcode.x} to the bitwise or of itself and register {opcode.y} ({result}).")

    def opcode_set_register_bitwise_and(self, opcode: Opcode, memory: Memory) -> None:
        result = self.registers[opcode.x] & self.registers[opcode.y]
        self.registers[opcode.x] = result
        logger.debug(f"Execute Opcode {opcode}: Set register {opcode.x} to the bitwise and of itself and register {opcode.y} ({result}).")

    def opcode_set_register_bitwise_xor(self, opcode: Opcode, memory: Memory) -> None:
        result = self.registers[opcode.x] ^ self.registers[opcode.y]
        self.registers[opcode.x] = result
        logger.debug(f"Execute Opcode {opcode}: Set register {opcode.x} to the bitwise xor of itself and register {opcode.y} ({result}).")

    def opcode_add_other_register(self, opcode: Opcode, memory: Memory) -> None:
        """
        Sets the value of the first provided register to the sum of itself and the value of the second provided register.  The carry flag (register 15) is set.
        """
        first_register_value = self.registers[opcode.x]
        second_register_value = self.registers[opcode.y]
        result, carry = self.bounded_add(first_register_value, second_register_value)
        self.registers[opcode.x] = result
        self.registers[FLAG_REGISTER] = carry
        logger.debug(f"Execute Opcode {opcode}: Set register {opcode.x} to the sum of itself and register {opcode.y} ({first_register_value} + {second_register_value} = {result}, carry = {carry}).")

    def opcode_subtract_from_first_register(self, opcode: Opcode, memory: Memory) -> None:
        """
        Sets the value of the first provided register to the difference of itself and the value of the second provided register.  The not borrow flag (register 15) is set.
        """
        first_register_value = self.registers[opcode.x]
        second_register_value = self.registers[opcode.y]
        result, not_borrow = self.bounded_subtract(first_register_value, second_register_value)
        self.registers[opcode.x] = result
        self.registers[FLAG_REGISTER] = not_borrow
        logger.debug(f"Execute Opcode {opcode}: Set register {opcode.x} to the difference of itself and register {opcode.y} ({first_register_value} - {second_register_value} = {result}, not borrow = {not_borrow}).")

    def opcode_bit_shift_right(self, opcode: Opcode, memory: Memory) -> None:
        """
        Shift the value of the provided register to the right by 1.  Set register 15 to the least significant bit before the operation.
        """
        register_value = self.registers[opcode.x]
        least_significant_bit = register_value & 1
        self.registers[opcode.x] = register_value >> 1
        self.registers[FLAG_REGISTER] = least_significant_bit
        logger.debug(f"Execute Opcode {opcode}: Shift register {opcode.x} right by 1 ({register_value} >> 1, previous least significant bit = {least_significant_bit}).")

    def opcode_subtract_from_second_register(self, opcode: Opcode, memory: Memory) -> None:
        """
        Sets the value of the first provided register to the difference of the value of the second provided register and itself.  The not borrow flag (register 15) is set.
        """
        first_register_value = self.registers[opcode.x]
        second_register_value = self.registers[opcode.y]
        result, not_borrow = self.bounded_subtract(second_register_value, first_register_value)
        self.registers[opcode.x] = result
        self.registers[FLAG_REGISTER] = not_borrow
        logger.debug(f"Execute Opcode {opcode}: Set register {opcode.x} to the difference of register {opcode.y} and itself ({second_register_value} - {first_register_value} = {result}, not borrow = {not_borrow}).")

    def opcode_bit_shift_left(self, opcode: Opcode, memory: Memory) -> None:
        """
        Shift the value of the provided register to the left by 1.  Set register 15 to the most significant bit before the operation.
        """
        register_value = self.registers[opcode.x]
        most_significant_bit = register_value >> 7
        self.registers[opcode.x] = (register_value << 1) & BYTE_MASK
        self.registers[FLAG_REGISTER] = most_significant_bit
        logger.debug(f"Execute Opcode {opcode}: Shift register {opcode.x} left by 1 ({register_value} << 1, previous most significant bit = {most_significant_bit}).")

    def opcode_if_register_not_equal(self, opcode: Opcode, memory: Memory) -> None:
        first_register_value = self.registers[opcode.x]
        second_register_value = self.registers[opcode.y]
        logger.debug(f"Execute Opcode {opcode}: Skip next instruction if register {opcode.x}'s value ({first_register_value}) is not equal to register {opcode.y}'s value ({second_register_value}).")
        if first_register_value != second_register_value:
            self.skip_next_instruction()

    def opcode_set_register_i(self, opcode: Opcode, memory: Memory) -> None:
        self.register_i = opcode.nnn
        logger.debug(f"Execute Opcode {opcode}: Set register I to {hex(opcode.nnn)}.")

    def opcode_goto_addition(self, opcode: Opcode, memory: Memory) -> None:
        """
        Jump to the provided address plus the value of register 0, wrapping within memory.
        """
        register_value = self.registers[0]
        self.program_counter = (opcode.nnn + register_value) & ADDRESS_MASK
        logger.debug(f"Execute Opcode {opcode}: Jump to the provided address plus the value of register 0 ({hex(opcode.nnn)} + {hex(register_value)} = {hex(self.program_counter)}).")

    def opcode_random_bitwise_and(self, opcode: Opcode, memory: Memory) -> None:
        random_value = self.random.randint(0, 255)
        result = opcode.nn & random_value
        self.registers[opcode.x] = result
        logger.debug(f"Execute Opcode {opcode}: Set register {opcode.x} to the bitwise and of {opcode.nn} and a random number ({random_value}) = {result}.")

    def opcode_draw_sprite(self, opcode: Opcode, memory: Memory) -> None:
        """
        Draws the sprite with the provided height found at the address in register I.
        The origin wraps onto the screen, but the sprite itself is not wrapped: any pixel landing past the end of the framebuffer is dropped.
        The collision flag (register 15) is set to 1 if a set pixel was unset, 0 otherwise.
        """
        x_origin = self.registers[opcode.x] % SCREEN_WIDTH
        y_origin = self.registers[opcode.y] % SCREEN_HEIGHT
        self.registers[FLAG_REGISTER] = 0
        for row, byte in enumerate(memory.read_block(self.register_i, opcode.n)):
            for column in range(SPRITE_WIDTH):
                index = (x_origin + column) + (y_origin + row) * SCREEN_WIDTH
                if index >= SCREEN_SIZE:
                    break
                if (byte >> (SPRITE_WIDTH - 1 - column)) & 1:
                    if self.pixels[index] == 1:
                        self.registers[FLAG_REGISTER] = 1
                    self.pixels[index] ^= 1
        logger.debug(f"Execute Opcode {opcode}: Drawing the sprite with a height of {opcode.n} found at address {hex(self.register_i)} at ({x_origin}, {y_origin}), collision = {self.registers[FLAG_REGISTER]}.")

    def opcode_if_key_pressed(self, opcode: Opcode, memory: Memory) -> None:
        """
        Skip the next instruction if the key represented by the low nibble of the provided register is pressed.
        """
        key = self.registers[opcode.x] & 0xF
        pressed = self.keypad[key] == 1
        logger.debug(f"Execute Opcode {opcode}: Skip next instruction if key {key} is pressed ({pressed}).")
        if pressed:
            self.skip_next_instruction()

    def opcode_if_key_not_pressed(self, opcode: Opcode, memory: Memory) -> None:
        """
        Skip the next instruction if the key represented by the low nibble of the provided register is not pressed.
        """
        key = self.registers[opcode.x] & 0xF
        pressed = self.keypad[key] == 1
        logger.debug(f"Execute Opcode {opcode}: Skip next instruction if key {key} is not pressed ({pressed}).")
        if not pressed:
            self.skip_next_instruction()

    def opcode_get_delay_timer(self, opcode: Opcode, memory: Memory) -> None:
        self.registers[opcode.x] = self.delay
        logger.debug(f"Execute Opcode {opcode}: Set register {opcode.x} to the value of the delay timer ({self.delay}).")

    def opcode_wait_for_key_press(self, opcode: Opcode, memory: Memory) -> None:
        """
        Store the lowest pressed key in the provided register.
        If no key is pressed, the program counter is moved back so that this instruction runs again on the next step.
        """
        for key, pressed in enumerate(self.keypad):
            if pressed:
                self.registers[opcode.x] = key
                logger.debug(f"Execute Opcode {opcode}: Key {key} is pressed, stored in register {opcode.x}.")
                return

        self.program_counter = (self.program_counter - 2) & ADDRESS_MASK
        logger.debug(f"Execute Opcode {opcode}: Waiting for a key press to store in register {opcode.x}.")

    def opcode_set_delay_timer(self, opcode: Opcode, memory: Memory) -> None:
        self.delay = self.registers[opcode.x]
        logger.debug(f"Execute Opcode {opcode}: Set the delay timer to the value of register {opcode.x} ({self.delay}).")

    def opcode_set_sound_timer(self, opcode: Opcode, memory: Memory) -> None:
        self.sound = self.registers[opcode.x]
        logger.debug(f"Execute Opcode {opcode}: Set the sound timer to the value of register {opcode.x} ({self.sound}).")

    def opcode_register_i_addition(self, opcode: Opcode, memory: Memory) -> None:
        """
        Add the value of the provided register to register I, wrapping within memory.  Register 15 is left untouched.
        """
        register_value = self.registers[opcode.x]
        register_i_value = self.register_i
        self.register_i = (register_i_value + register_value) & ADDRESS_MASK
        logger.debug(f"Execute Opcode {opcode}: Add register {opcode.x} to register I ({register_i_value} + {register_value} = {self.register_i}).")

    def opcode_set_register_i_to_hex_sprite_address(self, opcode: Opcode, memory: Memory) -> None:
        """
        Sets register I to the address of the hexadecimal sprite for the low nibble of the provided register.
        """
        digit = self.registers[opcode.x] & 0xF
        self.register_i = FONT_START_ADDRESS + digit * CHARACTER_SIZE
        logger.debug(f"Execute Opcode {opcode}: Set register I to the address ({self.register_i}) of the sprite for digit {digit:x}.")

    def opcode_binary_coded_decimal(self, opcode: Opcode, memory: Memory) -> None:
        """
        Store the Binary Coded Decimal representation of the value of the provided register in memory, starting at the value of register I.
        Hundreds digit stored in memory at the location of the value of register I.
        Tens digit stored in memory at the location of the value of register I + 1.
        Units digit stored in memory at the location of the value of register I + 2.
        """
        register_value = self.registers[opcode.x]
        hundreds = register_value // 100
        tens = register_value // 10 % 10
        units = register_value % 10
        memory[self.register_i] = hundreds
        memory[self.register_i + 1] = tens
        memory[self.register_i + 2] = units
        logger.debug(f"Execute Opcode {opcode}: Store the Binary Coded Decimal representation of register {opcode.x} ({register_value}) starting at {hex(self.register_i)}.")

    def opcode_register_dump(self, opcode: Opcode, memory: Memory) -> None:
        """
        Store the values of all registers from register 0 to the provided register in memory, starting at the value of register I.
        """
        logger.debug(f"Execute Opcode {opcode}: Dumping registers 0 to {opcode.x} into memory, starting at {hex(self.register_i)}.")
        memory.write_block(self.register_i, self.registers[:opcode.x + 1])

    def opcode_register_load(self, opcode: Opcode, memory: Memory) -> None:
        """
        Load the values of all registers from register 0 to the provided register from memory, starting at the value of register I.
        """
        logger.debug(f"Execute Opcode {opcode}: Loading registers 0 to {opcode.x} from memory, starting at {hex(self.register_i)}.")
        self.registers[:opcode.x + 1] = memory.read_block(self.register_i, opcode.x + 1)
    # endregion
