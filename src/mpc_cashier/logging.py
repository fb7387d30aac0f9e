import logging, sys, json
from typing import Optional

from .config import get_settings

# Поля, которые можно передать через extra= и увидеть в JSON-строке
CONTEXT_FIELDS = ("customer_id", "payment_method_id", "subscription_id", "method", "path", "status_code")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                line[field] = str(value)
        if record.exc_info:
            line["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False)


def configure_logging(level: Optional[str] = None) -> None:
    """Один JSON-хендлер на stdout для корневого логгера. Уровень по умолчанию - LOG_LEVEL."""
    level_name = level or get_settings().log_level
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(level=getattr(logging, level_name.upper(), logging.INFO), handlers=[handler], force=True)
