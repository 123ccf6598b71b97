import logging

from typing import Iterable, Union

from chipcore.errors import RomTooLargeError

logger = logging.getLogger(__name__)

# Constants
MEMORY_SIZE = 4096
ADDRESS_MASK = 4095
GAME_START_ADDRESS = 512
INTERPRETER_END_ADDRESS = 80
FONT_START_ADDRESS = 0
CHARACTER_SIZE = 5
MAX_GAME_SIZE = MEMORY_SIZE - GAME_START_ADDRESS

FONT = bytes.fromhex(
    "f0909090f0"  # 0
    "2060202070"  # 1
    "f010f080f0"  # 2
    "f010f010f0"  # 3
    "9090f01010"  # 4
    "f080f010f0"  # 5
    "f080f090f0"  # 6
    "f010204040"  # 7
    "f090f090f0"  # 8
    "f090f010f0"  # 9
    "f090f09090"  # A
    "e090e090e0"  # B
    "f0808080f0"  # C
    "e0909090e0"  # D
    "f080f080f0"  # E
    "f080f08080"  # F
)


class Memory:
    """
    The 4KB of addressable memory, with the hexadecimal digit sprites loaded at the bottom.
    Every address is masked to 12 bits, so reads and writes past the end wrap around to the start.
    """
    def __init__(self):
        """
        Constructor.
        """
        self.ram = bytearray(MEMORY_SIZE)
        self.load_digit_sprites()

    def __len__(self) -> int:
        return MEMORY_SIZE

    def __getitem__(self, address: int) -> int:
        return self.ram[address & ADDRESS_MASK]

    def __setitem__(self, address: int, value: int) -> None:
        self.ram[address & ADDRESS_MASK] = value & 0xFF

    def read_word(self, address: int) -> int:
        """
        Read the big-endian 16-bit word starting at the given address.
        :param address: The address of the high byte.
        :return: The combined word.
        """
        return (self[address] << 8) | self[address + 1]

    def read_block(self, address: int, length: int) -> bytes:
        """
        Read a run of consecutive bytes, wrapping past the end of memory.
        :param address: The address of the first byte.
        :param length: The number of bytes to read.
        :return: The bytes read.
        """
        return bytes(self[address + offset] for offset in range(length))

    def write_block(self, address: int, values: Iterable[int]) -> None:
        for offset, value in enumerate(values):
            self[address + offset] = value

    def clear(self) -> None:
        """
        Zero all of memory and reload the digit sprites.
        """
        self.ram[:] = bytes(MEMORY_SIZE)
        self.load_digit_sprites()

    def load_digit_sprites(self) -> None:
        """
        Load the sprites for the hexadecimal digits 0-f into memory.
        """
        self.ram[FONT_START_ADDRESS:FONT_START_ADDRESS + len(FONT)] = FONT

    def load_game(self, game: Union[bytes, bytearray]) -> None:
        """
        Copy a game into memory at the game start address.
        :param game: The raw bytes of the game.
        """
        if len(game) > MAX_GAME_SIZE:
            raise RomTooLargeError(len(game), MAX_GAME_SIZE)

        self.ram[GAME_START_ADDRESS:GAME_START_ADDRESS + len(game)] = game
        logger.debug(f"Loaded {len(game)} bytes of game data at address {hex(GAME_START_ADDRESS)}.")
