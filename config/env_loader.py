from __future__ import annotations

import os
from pathlib import Path
from typing import Dict

from dotenv import dotenv_values


def load_env(path: str | Path, override: bool = True) -> Dict[str, str]:
    """
    Load KEY=VALUE pairs from a .env file into os.environ.

    - Missing file loads nothing
    - Keys without a value are skipped
    - override=False keeps variables that are already set
    Returns a dict of keys loaded.
    """
    p = Path(path)
    loaded: Dict[str, str] = {}
    if not p.exists():
        return loaded
    for key, val in dotenv_values(p).items():
        if val is None:
            continue
        if not override and key in os.environ:
            continue
        os.environ[key] = val
        loaded[key] = val
    return loaded
