from .logging_config import setup_logger
from .env import env_int, env_optional_int, env_path, env_choice

__all__ = ["setup_logger", "env_int", "env_optional_int", "env_path", "env_choice"]
