import json
import logging
import logging.config
import sys

# 외부 라이브러리 로그는 WARNING 이상만
NOISY_LOGGERS = ("sqlalchemy.engine", "botocore", "boto3", "urllib3", "aiosqlite")


class JsonFormatter(logging.Formatter):
    """한 줄 JSON 로그 (CloudWatch 용)"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _stream_handler(stream, formatter: str, level: str = "NOTSET") -> dict:
    return {
        "class": "logging.StreamHandler",
        "stream": stream,
        "formatter": formatter,
        "level": level,
    }


def setup_logging(log_level: str = "INFO", json_logs: bool = False):
    """dictConfig 로 콘솔(stdout) + 경고 이상(stderr) 핸들러 구성"""
    level = log_level.upper()
    plain, verbose = ("json", "json") if json_logs else ("plain", "verbose")

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {"format": "%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s"},
            "verbose": {
                "format": "%(asctime)s | %(levelname)-8s | %(name)s (%(filename)s:%(lineno)d)\n%(message)s"
            },
            "json": {"()": JsonFormatter},
        },
        "handlers": {
            "stdout": _stream_handler(sys.stdout, plain),
            "stderr": _stream_handler(sys.stderr, verbose, "WARNING"),
        },
        "root": {"handlers": ["stdout", "stderr"], "level": level},
        "loggers": {
            "softpoints": {"handlers": ["stdout", "stderr"], "level": level, "propagate": False},
            "uvicorn.access": {"handlers": ["stdout"], "level": level, "propagate": False},
            **{name: {"level": "WARNING"} for name in NOISY_LOGGERS},
        },
    }
    logging.config.dictConfig(config)
