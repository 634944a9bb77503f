"""Root conftest: loads test settings before any module imports."""
from __future__ import annotations

import os
from pathlib import Path

_env_test = Path(os.environ.get("TASKHUB_TEST_ENV", Path(__file__).resolve().parent / ".env.test"))
if _env_test.exists():
    for line in _env_test.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        os.environ.setdefault(key.strip(), value.strip())

# taskhub.config builds Settings at import time and requires these.
for _key, _default in (("POSTGRES_USER", "taskhub"), ("POSTGRES_PASSWORD", "taskhub"), ("POSTGRES_DB", "taskhub_test")):
    os.environ.setdefault(_key, _default)
