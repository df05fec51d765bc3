"""Root conftest: test environment for the relay settings.

``relay_chat.config.settings`` is built at import time, so the variables in
``.env.test`` have to be in ``os.environ`` before any test module imports it.
Values already exported in the shell win.
"""
from __future__ import annotations

import os
from pathlib import Path

ENV_FILE = Path(__file__).resolve().parent / ".env.test"


def _load_env(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    if not path.exists():
        return values
    for raw in path.read_text().splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip().strip('"')
    return values


for _key, _value in _load_env(ENV_FILE).items():
    os.environ.setdefault(_key, _value)
