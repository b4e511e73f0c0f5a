# config.py
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent
DATA_DIR = BASE_DIR / "data"
LOG_DIR = BASE_DIR / "logs"
SNAPSHOT_FILE = DATA_DIR / "portfolio.csv"
LOG_FILE = LOG_DIR / "server.log"

# --- simulation ---
START_CASH = 100000.0
TICK_INTERVAL = 1.0  # seconds
HISTORY_LIMIT = 500
PRICE_STEP_PCT = 1.5  # max move per tick, in percent
PRICE_FLOOR = 0.01

# --- server ---
HOST = "127.0.0.1"
PORT = 5001

LOG_FORMAT = "%(asctime)s  %(levelname)s  %(message)s"

# engine modules log under these names and share the app's file handler
ENGINE_LOGGERS = ("trading", "services")


def setup_logging(name: str = "stock_app", log_file: Path = LOG_FILE) -> logging.Logger:
    """
    Return a named logger writing to a rotating file under logs/.
    Safe to call more than once; the handler is only attached the first time.
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    # Avoid adding multiple handlers on reloads
    if logger.handlers:
        return logger

    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(log_file),
        maxBytes=3_000_000,
        backupCount=3,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)

    for engine_name in ENGINE_LOGGERS:
        engine_logger = logging.getLogger(engine_name)
        engine_logger.setLevel(logging.INFO)
        if not engine_logger.handlers:
            engine_logger.addHandler(handler)
    return logger
