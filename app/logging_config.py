import logging, logging.config

# Upstream clients log one line per failed lookup; keep them visible even
# when the app runs quieter than INFO.
UPSTREAM_LOGGERS = ("app.services.hiscores_client", "app.services.cml_client")


def _level_name(name: str) -> str:
    name = name.upper()
    if name not in logging.getLevelNamesMapping():
        raise ValueError(f"Unknown log level: {name!r}")
    return name


def setup_logging(level: str = "INFO", access_log: bool = True, upstream_level: str = "WARNING"):
    level = _level_name(level)
    upstream_level = _level_name(upstream_level)
    levels = logging.getLevelNamesMapping()
    loggers = {
        "uvicorn.error":  {"level": level, "handlers": ["console"], "propagate": False},
        "uvicorn.access": {"level": ("INFO" if access_log else "WARNING"),
                           "handlers": ["access"], "propagate": False},
        # httpx logs every request at INFO; a track fans out to several tables
        "httpx": {"level": "WARNING"},
        "app.services.job_dispatcher": {"level": level},
        "track_players": {"level": level},
    }
    for name in UPSTREAM_LOGGERS:
        loggers[name] = {"level": min(level, upstream_level, key=levels.__getitem__)}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                        "datefmt": "%H:%M:%S"},
            "access_simple": {"format": "%(message)s"},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "default"},
            "access":  {"class": "logging.StreamHandler", "formatter": "access_simple"},
        },
        "loggers": loggers,
        "root": {"level": level, "handlers": ["console"]},
    })
