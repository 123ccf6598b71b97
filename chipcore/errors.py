class ChipCoreError(Exception):
    """
    Base class for every error raised by the interpreter or its host.
    """


class StackError(ChipCoreError):
    """
    The call stack was misused by the running program.
    """


class StackOverflowError(StackError):
    def __init__(self, address: int, depth: int):
        super().__init__(f"Call to {hex(address)} would exceed the maximum stack depth of {depth}.")
        self.address = address
        self.depth = depth


class StackUnderflowError(StackError):
    def __init__(self, address: int):
        super().__init__(f"Return from subroutine at {hex(address)} with an empty stack.")
        self.address = address


class RomError(ChipCoreError):
    """
    A game could not be loaded into memory.
    """


class RomTooLargeError(RomError):
    def __init__(self, size: int, capacity: int):
        super().__init__(f"Game is {size} bytes but only {capacity} bytes of memory are available for it.")
        self.size = size
        self.capacity = capacity


class RomNotFoundError(RomError):
    pass
