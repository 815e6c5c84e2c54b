from __future__ import annotations

from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv


def load_dotenv_if_present() -> Optional[Path]:
    """Load `.env` from the working directory or a parent, if there is one.

    Variables already set in the environment win. Returns the loaded path.
    """

    env_path = find_dotenv(filename=".env", usecwd=True)
    if not env_path:
        return None

    p = Path(env_path).resolve()
    if not p.exists():
        return None

    load_dotenv(dotenv_path=str(p), override=False)
    return p
