"""
config.py
~~~~~~~~~

Environment-driven settings and logging setup shared by the CLI and the
API server.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

NOISY_LOGGERS = ['socketio', 'engineio', 'engineio.server',
                 'socketio.server', 'werkzeug']

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class Settings:
    """Runtime configuration read from environment variables."""

    log_level: str = 'INFO'
    is_production: bool = False
    port: int = 8000
    model_dir: str = 'models'
    dataset_dir: Optional[str] = None
    precision: int = 6

    @classmethod
    def from_env(cls) -> 'Settings':
        return cls(
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
            is_production=os.getenv('FLASK_ENV') == 'production',
            port=int(os.getenv('PORT', 8000)),
            model_dir=os.getenv('NEURO_MODEL_DIR', 'models'),
            dataset_dir=os.getenv('NEURO_DATASET_DIR') or None,
            precision=int(os.getenv('NEURO_PRECISION', 6)),
        )


def configure_logging(settings: Optional[Settings] = None,
                      level: Optional[str] = None) -> None:
    """
    Set up logging based on environment.

    - In production: silence noisy third-party loggers, keep ours at INFO
    - In development: show socketio/engineio traffic for debugging
    """
    settings = settings or Settings.from_env()
    level_name = (level or settings.log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(level=log_level, format=LOG_FORMAT)

    if settings.is_production:
        for logger_name in NOISY_LOGGERS:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('neuro').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)
