"""Run the gateway with uvicorn: ``python -m encoding_gateway``."""

import uvicorn

from encoding_gateway.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "encoding_gateway.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
