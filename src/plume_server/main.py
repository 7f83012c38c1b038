import logging

import uvicorn

from plume_core.config import settings


def main() -> None:
    logging.basicConfig(level=settings.log_level, format=settings.log_format)
    uvicorn.run(
        "plume_server.app:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
        timeout_keep_alive=30,
    )


if __name__ == "__main__":
    main()
