import logging.config
import sys
from typing import Any, Dict

# 차단된 차감/복구 기록은 LOG_LEVEL과 무관하게 남긴다
INTEGRITY_LOGGERS = (
    "loyaltyapi.core.balance_guard",
    "loyaltyapi.services.repair_service",
    "loyaltyapi.services.audit_service",
)


def _integrity_level(log_level: str) -> str:
    level = logging.getLevelName(log_level)
    if isinstance(level, int) and level > logging.INFO:
        return "INFO"
    return log_level


def build_logging_config(log_level: str = "INFO") -> Dict[str, Any]:
    log_level = log_level.upper()

    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {
                "format": "%(asctime)s | %(levelname)-8s | %(name)s\n%(pathname)s:%(lineno)d\n%(message)s",
            },
            "simple": {
                "format": "%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s",
            },
        },
        "handlers": {
            "console": {
                "formatter": "simple",
                "class": "logging.StreamHandler",
                "stream": sys.stdout,
            },
            "error_console": {
                "formatter": "detailed",
                "class": "logging.StreamHandler",
                "stream": sys.stderr,
                "level": "WARNING",
            },
        },
        "loggers": {
            "": {  # root logger
                "handlers": ["console"],
                "level": log_level,
            },
            "uvicorn.access": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": False,
            },
            "loyaltyapi": {
                "handlers": ["console", "error_console"],
                "level": log_level,
                "propagate": False,
            },
        },
    }

    for name in INTEGRITY_LOGGERS:
        # 핸들러는 상위 loyaltyapi 로거 것을 사용
        config["loggers"][name] = {"level": _integrity_level(log_level)}

    return config


def setup_logging(log_level: str = "INFO"):
    logging.config.dictConfig(build_logging_config(log_level))
