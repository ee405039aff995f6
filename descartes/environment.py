import os
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from dotenv import load_dotenv

if TYPE_CHECKING:
    from .hub.vg import VGInterface
    from .logger import LoggerInterface
    from .manager import DescartesManager


@dataclass(frozen=True)
class DescartesConfig:
    """Constants of the deadline policy. All durations are in seconds."""

    time_to_start_machine: int = 40
    drive_upload_allowance: int = 40 * 60
    partition_size: int = 10
    pico_seconds_to_run_insn: int = 500

    def __post_init__(self):
        for name in ["time_to_start_machine", "drive_upload_allowance", "pico_seconds_to_run_insn"]:
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if self.partition_size < 2:
            raise ValueError("partition_size must be at least 2")

    @staticmethod
    def from_env(dotenv_path: Optional[str] = None) -> 'DescartesConfig':
        """
        Loads the configuration from the environment (and from the .env file, if present).
        Variables that are not set keep their default value.
        """
        load_dotenv(dotenv_path)

        defaults = DescartesConfig()
        return DescartesConfig(
            time_to_start_machine=int(os.getenv("DESCARTES_TIME_TO_START_MACHINE", defaults.time_to_start_machine)),
            drive_upload_allowance=int(os.getenv("DESCARTES_DRIVE_UPLOAD_ALLOWANCE", defaults.drive_upload_allowance)),
            partition_size=int(os.getenv("DESCARTES_PARTITION_SIZE", defaults.partition_size)),
            pico_seconds_to_run_insn=int(os.getenv("DESCARTES_PICO_SECONDS_TO_RUN_INSN", defaults.pico_seconds_to_run_insn)),
        )


class Environment:
    def __init__(self, manager: 'DescartesManager', li: 'LoggerInterface', vg: 'VGInterface', interactive: bool):
        self.manager = manager
        self.li = li
        self.vg = vg
        self.interactive = interactive

    def prompt(self, message: Optional[str] = None):
        if message is not None:
            print(message)
        if self.interactive:
            print("Press Enter to continue...")
            input()
