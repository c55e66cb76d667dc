"""Development launcher: loads the env file and logging config, then hands off to uvicorn."""

from __future__ import annotations

import os

import uvicorn

from common.core.config_service import load_env_file
from common.logging.setup_logging import setup_logging


def main() -> None:
    env = os.getenv("APP_ENV", "local")
    _ = load_env_file(env)
    setup_logging(log_level=os.getenv("LOG_LEVEL"))

    reload = env == "local"
    uvicorn.run(
        "app.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
        reload=reload,
        reload_dirs=["app", "../libs"] if reload else None,
        log_config=None,
    )


if __name__ == "__main__":
    main()
