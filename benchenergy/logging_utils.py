import json, logging, sys, time

_RESERVED = ("msg", "args", "exc_info", "exc_text", "stack_info", "stack_level", "created",
             "msecs", "relativeCreated", "levelno", "levelname", "pathname", "filename",
             "module", "lineno", "funcName", "thread", "threadName", "processName", "process",
             "name", "taskName")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        # Extra fields passed via ``extra=`` land on the record
        for k, v in record.__dict__.items():
            if k in _RESERVED:
                continue
            try:
                json.dumps({k: v})
                payload[k] = v
            except (TypeError, ValueError):
                payload[k] = str(v)
        return json.dumps(payload)


def get_logger(name: str = "benchenergy", level: str = "INFO") -> logging.Logger:
    """Return the shared diagnostic logger; all output goes to stderr."""
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    logger.setLevel(level)
    h = logging.StreamHandler(sys.stderr)
    h.setFormatter(JsonFormatter())
    logger.addHandler(h)
    logger.propagate = False
    return logger
