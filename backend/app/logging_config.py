import json
import logging
import os

# Attributes every LogRecord carries; anything else came in through ``extra=``
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


def setup_logging() -> None:
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if os.environ.get("JSON_LOGS", "0") == "1":
        logging.getLogger().handlers = [JSONLogHandler()]


class JSONLogHandler(logging.StreamHandler):
    def emit(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            msg = {
                "level": record.levelname,
                "logger": record.name,
                "message": record.getMessage(),
            }
            for key, value in record.__dict__.items():
                if key not in _RESERVED and not key.startswith("_"):
                    msg[key] = value
            if record.exc_info:
                msg["exc_info"] = self.formatException(record.exc_info)
            self.stream.write(json.dumps(msg, default=str) + "\n")
        except Exception:
            super().emit(record)
