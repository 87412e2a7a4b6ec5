"""
Process entrypoint: ``python -m render_api`` or ``render-api``.
"""

import logging
import sys

import uvicorn

from render_api.app.core.config import get_settings


def main() -> None:
    settings = get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    logger = logging.getLogger("render_api")

    logger.info(
        "render_api_listening",
        extra={"host": settings.server_host, "port": settings.server_port},
    )

    uvicorn.run(
        "render_api.app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
