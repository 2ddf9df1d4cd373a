from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000


def get_server_config() -> ServerConfig:
    return ServerConfig(
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )


def get_gse_config_path() -> Optional[str]:
    """JSON file overriding the built-in coefficients, if any."""
    return os.getenv("GSE_CONFIG_PATH") or None


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


def configure_logging() -> None:
    # entry points only; library modules just use getLogger(__name__)
    logging.basicConfig(level=get_log_level(), format="%(asctime)s %(levelname)s %(name)s - %(message)s")
