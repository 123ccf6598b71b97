import logging
import pygame
import easygui

import numpy as np

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from chipcore.errors import ChipCoreError
from chipcore.interpreter import SCREEN_HEIGHT, SCREEN_WIDTH, CpuSnapshot
from chipcore.machine import GAME_EXTENSIONS, Machine

logger = logging.getLogger(__name__)

# Constants
SCALE = 12
FRAME_RATE = 60
INSTRUCTIONS_PER_FRAME = 8
SOUND_FREQUENCY = 44100
SOUND_BUFFER = 4096
TONE_HZ = 550
WINDOW_TITLE = "ChipCore"
GAMES_PATH = str(Path.cwd().joinpath("games", "*.ch8"))

COLOUR_PALETTE = [(0, 0, 0), (0, 255, 0)]

KEY_LOOKUP = {
    pygame.K_1: 1,
    pygame.K_q: 4,
    pygame.K_a: 7,
    pygame.K_z: 10,
    pygame.K_2: 2,
    pygame.K_w: 5,
    pygame.K_s: 8,
    pygame.K_x: 0,
    pygame.K_3: 3,
    pygame.K_e: 6,
    pygame.K_d: 9,
    pygame.K_c: 11,
    pygame.K_4: 12,
    pygame.K_r: 13,
    pygame.K_f: 14,
    pygame.K_v: 15,
}


@dataclass
class HostConfig:
    """
    Settings for the window and the pacing of the driver loop.
    """
    scale: int = SCALE
    frame_rate: int = FRAME_RATE
    instructions_per_frame: int = INSTRUCTIONS_PER_FRAME
    mute: bool = False
    debug: bool = False
    palette: List[Tuple[int, int, int]] = field(default_factory=lambda: list(COLOUR_PALETTE))


def debug_text(snapshot: CpuSnapshot) -> str:
    """
    Format the debugger-visible state on a single line.
    :param snapshot: The state to format.
    :return: The formatted state.
    """
    registers = " ".join(f"V{index:X}:{value:02X}" for index, value in enumerate(snapshot.registers))
    opcode = str(snapshot.opcode) if snapshot.opcode is not None else "----"
    return f"PC:{snapshot.program_counter:03X} I:{snapshot.register_i:03X} OP:{opcode} DT:{snapshot.delay} ST:{snapshot.sound} SP:{snapshot.stack_depth} {registers}"


class Beeper:
    """
    Plays a constant tone while the sound timer is running.
    """
    def __init__(self, enabled: bool = True):
        self.playing = False
        self.sound_player: Optional[pygame.mixer.Sound] = None

        if not enabled:
            return

        try:
            pygame.mixer.init(SOUND_FREQUENCY, -16, 1, SOUND_BUFFER)
        except pygame.error as error:
            logger.warning(f"Sound disabled, the audio device could not be opened: {error}.")
            return

        # One cycle of a sine wave, repeated to fill a second of audio.
        length = SOUND_FREQUENCY / TONE_HZ
        omega = np.pi * 2 / length
        x_values = np.arange(int(length)) * omega
        one_cycle = SOUND_BUFFER * np.sin(x_values)
        channels = pygame.mixer.get_init()[2]
        sound_wave = np.resize(one_cycle, (SOUND_FREQUENCY,)).astype(np.int16)
        if channels > 1:
            sound_wave = np.repeat(sound_wave[:, np.newaxis], channels, axis=1)
        self.sound_player = pygame.sndarray.make_sound(sound_wave)

    def update(self, active: bool) -> None:
        if self.sound_player is None or active == self.playing:
            return

        if active:
            self.sound_player.play(-1)
            logger.debug("Starting sound.")
        else:
            self.sound_player.stop()
            logger.debug("Stopping sound.")
        self.playing = active


class Emulator:
    """
    The desktop host: owns the window, feeds keyboard state into the machine and paces execution.
    """
    def __init__(self, config: Optional[HostConfig] = None):
        """
        Constructor.
        :param config: The host settings, defaults are used if not provided.
        """
        self.config = config if config is not None else HostConfig()
        self.machine = Machine()
        self.running = False
        self.paused = False
        self.game_name = WINDOW_TITLE

        pygame.init()
        pygame.display.init()

        self.beeper = Beeper(not self.config.mute)
        self.clock = pygame.time.Clock()
        self.inter_screen = pygame.Surface((SCREEN_WIDTH, SCREEN_HEIGHT), 0, 8)
        self.inter_screen.set_palette(self.config.palette)
        self.screen = pygame.display.set_mode((SCREEN_WIDTH * self.config.scale, SCREEN_HEIGHT * self.config.scale), 0, 8)
        self.screen.set_palette(self.config.palette)
        pygame.display.set_caption(WINDOW_TITLE)

    # region Games
    def load_game(self, path: str) -> bool:
        """
        Load the game at the provided path, reporting any problem to the user.
        :param path: The path of the game.
        :return: True if the game was loaded, False otherwise.
        """
        try:
            self.machine.load_rom_file(path)
        except ChipCoreError as error:
            self.report_error(error, "Game Not Loaded")
            return False

        self.game_name = Path(path).stem
        self.paused = False
        self.beeper.update(False)
        pygame.display.set_caption(self.game_name)
        return True

    def select_game(self) -> bool:
        """
        Show the game picker and load the chosen game.
        :return: True if a game was loaded, False otherwise.
        """
        file_name = easygui.fileopenbox(title="Select a Game", default=GAMES_PATH, filetypes=[[f"*{extension}" for extension in GAME_EXTENSIONS] + ["CHIP-8"]])

        if not file_name:
            easygui.msgbox("Pick a game to play!  Press the L key to re-open the game picker.", "No Game Selected")
            return False

        return self.load_game(file_name)

    def report_error(self, error: ChipCoreError, title: str) -> None:
        logger.error(str(error))
        easygui.msgbox(str(error), title)
    # endregion

    # region Frame
    def poll_keypad(self) -> None:
        """
        Release every key, then press the keys which are currently held down.
        """
        interpreter = self.machine.interpreter
        interpreter.clear_keys()
        pressed = pygame.key.get_pressed()
        for host_key, key in KEY_LOOKUP.items():
            if pressed[host_key]:
                interpreter.press_key(key)

    def run_frame(self) -> None:
        """
        Run one frame's worth of instructions, then tick the timers once.
        A fatal error stops the game and is reported to the user.
        """
        if not self.machine.game_loaded or self.paused:
            return

        try:
            self.machine.run(self.config.instructions_per_frame)
        except ChipCoreError as error:
            self.machine.game_loaded = False
            self.beeper.update(False)
            self.report_error(error, "Game Crashed")
            return

        self.machine.tick_timers()
        self.beeper.update(self.machine.interpreter.sound_active)

    def draw_to_display(self) -> None:
        """
        Update the display.
        """
        pixels = self.machine.interpreter.display.reshape((SCREEN_HEIGHT, SCREEN_WIDTH)).T
        pygame.surfarray.blit_array(self.inter_screen, pixels)
        pygame.transform.scale(self.inter_screen, self.screen.get_size(), self.screen)
        pygame.display.flip()

        if self.config.debug:
            pygame.display.set_caption(f"{self.game_name} | {debug_text(self.machine.snapshot())}")
    # endregion

    def handle_events(self) -> None:
        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                self.running = False
            elif event.type == pygame.KEYDOWN:
                if event.key == pygame.K_ESCAPE:
                    self.running = False
                elif event.key == pygame.K_l:
                    self.select_game()
                elif event.key == pygame.K_p:
                    self.paused = not self.paused
                    self.beeper.update(False)
                    logger.info(f"Paused: {self.paused}.")
                    if self.paused:
                        logger.info(debug_text(self.machine.snapshot()))

    def event_loop(self, path: Optional[str] = None) -> None:
        """
        Load the first game, then drive the machine until the window is closed.
        :param path: The game to start with, the game picker is shown if not provided.
        """
        if path:
            self.load_game(path)
        else:
            self.select_game()

        self.running = True
        while self.running:
            self.handle_events()
            self.poll_keypad()
            self.run_frame()
            self.draw_to_display()
            self.clock.tick(self.config.frame_rate)

        self.beeper.update(False)
        pygame.quit()
