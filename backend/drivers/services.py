import logging

from drivers.models import Driver

logger = logging.getLogger(__name__)


def clear_fcm_token(driver: Driver) -> None:
    """Forget a push token that Firebase reported as invalid or unregistered."""
    if not driver.fcm_token:
        return
    logger.info("Clearing invalid FCM token for driver %s", driver.id)
    driver.fcm_token = None
    driver.save(update_fields=["fcm_token"])
