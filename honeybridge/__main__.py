"""Run the bridge under uvicorn: ``python -m honeybridge``."""

from __future__ import annotations

import uvicorn

from honeybridge.config import get_settings
from honeybridge.serve import configure_logging, create_app


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
