import logging
from server.config import config
from server.database import engine, Base
from .scheduler import reminder_scheduler

logger = logging.getLogger(__name__)


def start_worker():
    """
    Run the reminder scheduler on its own, outside the API process.
    """
    Base.metadata.create_all(bind=engine)
    try:
        reminder_scheduler.run_forever()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Reminder worker stopped")


if __name__ == "__main__":
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    start_worker()
