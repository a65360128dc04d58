"""Run the service with uvicorn: ``python -m agriauth``."""

import uvicorn

from agriauth.config import get_config


def main() -> None:
    config = get_config()
    uvicorn.run(
        "agriauth.main:create_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level,
        access_log=config.server.access_log,
    )


if __name__ == "__main__":
    main()
