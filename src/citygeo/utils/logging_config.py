import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_LOG_DIR = "logs"
DEFAULT_CONSOLE_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def _console_level() -> int:
    name = (os.getenv("LOG_LEVEL") or DEFAULT_CONSOLE_LEVEL).strip().upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise RuntimeError(f"LOG_LEVEL must be a logging level name (got {name!r})")
    return level


def setup_logger(log_file: str) -> logging.Logger:
    """
    Route citygeo logging for one `python -m` run.

    The file `LOG_DIR/<log_file>` receives everything from DEBUG up; the
    terminal receives LOG_LEVEL and above (INFO unless set). Both are read
    on every call, so a run can be redirected without re-importing.
    Library modules only ever call `logging.getLogger(__name__)`.
    """
    console_level = _console_level()
    log_dir = Path(os.getenv("LOG_DIR") or DEFAULT_LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M")

    file_handler = logging.FileHandler(log_dir / log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console.setLevel(console_level)

    # replaces handlers left over from an earlier run in the same process
    logging.basicConfig(level=logging.DEBUG, handlers=[file_handler, console], force=True)
    return logging.getLogger("citygeo")
