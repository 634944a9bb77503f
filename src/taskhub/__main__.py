"""Entrypoint: python -m taskhub (SERVICE_NAME selects users or tasks)."""
from __future__ import annotations

import uvicorn

from taskhub.config import settings

_PORTS = {"users": 8081, "tasks": 8082}


def main() -> None:
    uvicorn.run(
        "taskhub.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=_PORTS[settings.SERVICE_NAME],
        log_level="info",
    )


if __name__ == "__main__":
    main()
