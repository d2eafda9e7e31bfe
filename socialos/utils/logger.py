# =============================================================================
# LOGGING UTILITY
# =============================================================================

import logging
import os
from pathlib import Path
from datetime import datetime

class Logger:
    def __init__(self, name="socialos", log_dir=None):
        log_dir = Path(log_dir or os.getenv('LOG_DIR', 'logs'))
        log_dir.mkdir(exist_ok=True)

        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, os.getenv('LOG_LEVEL', 'INFO').upper(), logging.INFO))

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        # File handler (one file per day)
        today = datetime.now().strftime('%Y-%m-%d')
        file_handler = logging.FileHandler(log_dir / f'socialos_{today}.log')
        file_handler.setFormatter(formatter)

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)

        if not self.logger.handlers:
            self.logger.addHandler(file_handler)
            self.logger.addHandler(console_handler)

    def get_logger(self):
        return self.logger

# Global logger instance
logger = Logger().get_logger()
