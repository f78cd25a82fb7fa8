"""Run the instrumented demo server: ``python -m reqlens``."""

import uvicorn

from reqlens.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "reqlens.adapters.frameworks.fastapi:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    main()
