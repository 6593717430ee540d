from pathlib import Path
from typing import Dict, Any, Optional

import structlog

from ..config import ENV_FILE_PATH

logger = structlog.get_logger()


def update_env_file(updates: Dict[str, Any], env_file: Optional[Path] = None) -> bool:
    """
    Update values in the .env file.
    Creates the file if it doesn't exist. None values are skipped.
    """
    env_file = Path(env_file) if env_file else ENV_FILE_PATH

    try:
        env_file.parent.mkdir(parents=True, exist_ok=True)

        lines = []
        if env_file.exists():
            with open(env_file, "r", encoding="utf-8") as f:
                lines = f.readlines()

        # Map keys to line numbers for existing vars
        key_map = {}
        for idx, line in enumerate(lines):
            if "=" in line and not line.strip().startswith("#"):
                key = line.split("=", 1)[0].strip()
                key_map[key] = idx

        for key, value in updates.items():
            if value is None:
                continue

            new_line = f"{key}={value}\n"

            if key in key_map:
                lines[key_map[key]] = new_line
            else:
                if lines and not lines[-1].endswith("\n"):
                    lines[-1] += "\n"
                lines.append(new_line)

        with open(env_file, "w", encoding="utf-8") as f:
            f.writelines(lines)

        return True
    except OSError as e:
        logger.error("Error updating .env", path=str(env_file), error=str(e))
        return False
