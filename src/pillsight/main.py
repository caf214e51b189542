"""Server entrypoint for the PillSight API."""

from __future__ import annotations

import logging

import uvicorn

from pillsight.settings import load_settings

LOGGER = logging.getLogger("pillsight.main")


def run(host: str = "0.0.0.0", port: int = 8080, log_level: str = "info") -> None:
    # create_app runs inside the server process through uvicorn's factory mode.
    settings = load_settings()
    LOGGER.info(
        "starting pillsight api on %s:%d (store=%s, generative_ai=%s)",
        host,
        port,
        settings.store_backend,
        "enabled" if settings.google_api_key else "disabled",
    )
    uvicorn.run(
        "pillsight.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=False,
        log_level=log_level,
    )


if __name__ == "__main__":
    run()
