"""Run the API server: ``python -m pagebase``."""

import uvicorn

from pagebase.config import settings


def main() -> None:
    uvicorn.run(
        "pagebase.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
