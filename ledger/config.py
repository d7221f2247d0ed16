# ledger/config.py
import logging
import logging.config
import os
from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    data_dir: str = os.path.join(BASE_DIR, "data")
    transactions_key: str = "finance_transactions"
    accounts_key: str = "finance_accounts"

    tax_rate: Decimal = Decimal("0.06")
    default_currency: str = "TJS"

    log_level: str = "INFO"
    log_file: Optional[str] = None  # rotating file handler when set


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def build_logging_config(settings: Settings) -> dict:
    handlers = {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
            'level': settings.log_level,
        },
    }
    if settings.log_file:
        handlers['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'formatter': 'standard',
            'filename': settings.log_file,
            'maxBytes': 1024 * 1024,
            'backupCount': 3,
            'encoding': 'utf-8',
            'level': settings.log_level,
        }
    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'standard': {
                'format': '%(asctime)s - %(name)s - %(levelname)s - %(module)s.%(funcName)s:%(lineno)d - %(message)s',
            },
        },
        'handlers': handlers,
        'loggers': {
            'ledger': {
                'handlers': list(handlers),
                'level': settings.log_level,
                'propagate': False,
            },
        },
    }


def configure_logging(settings: Optional[Settings] = None) -> None:
    logging.config.dictConfig(build_logging_config(settings or get_settings()))
