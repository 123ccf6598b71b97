import logging
import random

from pathlib import Path
from typing import Optional, Union

from chipcore.errors import RomNotFoundError
from chipcore.interpreter import CpuSnapshot, Interpreter
from chipcore.memory import Memory

logger = logging.getLogger(__name__)

# Constants
GAME_EXTENSIONS = (".chip8", ".ch8")


class Machine:
    """
    A complete CHIP-8 computer: one block of memory and the interpreter which runs the program held in it.
    """
    def __init__(self, rng: Optional[random.Random] = None):
        self.memory = Memory()
        self.interpreter = Interpreter(rng)
        self.game_loaded = False

    def reset(self) -> None:
        """
        Return the machine to its power-on state, discarding any loaded game.
        """
        self.memory.clear()
        self.interpreter.reset()
        self.game_loaded = False

    def load_rom(self, game: Union[bytes, bytearray]) -> None:
        """
        Reset the machine and place the provided game in memory.
        :param game: The raw bytes of the game.
        """
        self.reset()
        self.memory.load_game(game)
        self.game_loaded = True

    def load_rom_file(self, path: Union[str, Path]) -> None:
        """
        Reset the machine and load the game stored at the provided path.
        :param path: The path of the game file.
        """
        path = Path(path)

        if not path.is_file():
            raise RomNotFoundError(f"Game could not be loaded as the path does not exist!  Path: {path}.")

        if path.suffix.lower() not in GAME_EXTENSIONS:
            raise RomNotFoundError(f"Game does not appear to be a CHIP-8 game as the file type is not one of {', '.join(GAME_EXTENSIONS)}.  Path: {path}.")

        logger.info(f"Loading game at path {path}.")
        try:
            game = path.read_bytes()
        except OSError as error:
            raise RomNotFoundError(f"Game could not be read!  Path: {path}.  Reason: {error}.") from error
        self.load_rom(game)

    def step(self) -> None:
        self.interpreter.step(self.memory)

    def run(self, steps: int) -> None:
        """
        Execute a fixed number of instructions.
        :param steps: The number of instructions to execute.
        """
        for _ in range(steps):
            self.interpreter.step(self.memory)

    def tick_timers(self) -> None:
        """
        Decrement both timers once.  Called by the host at 60 Hz, independently of how many instructions ran.
        """
        self.interpreter.decrement_delay_timer()
        self.interpreter.decrement_sound_timer()

    def snapshot(self) -> CpuSnapshot:
        return self.interpreter.snapshot()
