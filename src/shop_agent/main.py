"""Convenience entrypoint to run the gateway locally."""

from __future__ import annotations

import uvicorn

from .logging import configure_logging
from .schema_check import assert_schema_consistency
from .settings import get_settings


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    # Fail before binding the port when the contracts have drifted.
    assert_schema_consistency(settings)
    uvicorn.run(
        "shop_agent.app:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
