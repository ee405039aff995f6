import time
from typing import Callable, Optional

# A clock returns the current time in integer seconds
Clock = Callable[[], int]


def system_clock() -> int:
    return int(time.time())


class ManualClock:
    """A clock that only moves when told to. Used by simulations and tests."""

    def __init__(self, now: int = 0):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Time cannot go backwards")
        self.now += seconds
        return self.now


def parse_bytes32(s: str) -> bytes:
    """Parses a hex string (with or without the 0x prefix) of at most 32 bytes, left-padding it with zeros."""

    if s.startswith("0x") or s.startswith("0X"):
        s = s[2:]
    if len(s) % 2 == 1:
        s = "0" + s
    value = bytes.fromhex(s)
    if len(value) > 32:
        raise ValueError(f"Value too long: {len(value)} bytes")
    return bytes(32 - len(value)) + value


def format_hash(h: Optional[bytes]) -> str:
    return "None" if h is None else "0x" + h.hex()
