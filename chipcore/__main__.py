"""
Command line entry point.

    python -m chipcore games/pong.ch8 --scale 10 --speed 12
    python -m chipcore            # pick a game with a file dialog
"""
import argparse
import logging
import sys

from typing import List, Optional

from chipcore.emulator import FRAME_RATE, INSTRUCTIONS_PER_FRAME, SCALE, Emulator, HostConfig


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chipcore", description="Play CHIP-8 games in a pygame window.")
    parser.add_argument("rom", nargs="?", default=None, help="Path to the game (.ch8 or .chip8).  A file picker is shown if omitted.")
    parser.add_argument("--scale", "-s", type=int, default=SCALE, help=f"Size of one CHIP-8 pixel on screen.  Default: {SCALE}.")
    parser.add_argument("--speed", type=int, default=INSTRUCTIONS_PER_FRAME, help=f"Instructions executed per {FRAME_RATE} Hz frame.  Default: {INSTRUCTIONS_PER_FRAME}.")
    parser.add_argument("--mute", action="store_true", default=False, help="Disable the beep.")
    parser.add_argument("--debug", action="store_true", default=False, help="Show the registers in the window title.")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="Increase log verbosity (-v for INFO, -vv for DEBUG).")
    return parser


def configure_logging(verbosity: int) -> None:
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(level=level, format="[%(levelname)s]:  %(message)s", stream=sys.stdout)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.scale < 1 or args.speed < 1:
        parser.error("--scale and --speed must be at least 1")
    configure_logging(args.verbose)

    config = HostConfig(scale=args.scale, instructions_per_frame=args.speed, mute=args.mute, debug=args.debug)
    emulator = Emulator(config)
    try:
        emulator.event_loop(args.rom)
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
