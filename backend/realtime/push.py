"""
Firebase Cloud Messaging push notifications for drivers.

Push is a side channel: nothing here raises. When Firebase is not configured
send_push_notification() returns None, and when Firebase rejects the token
the result asks the caller to forget it.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import firebase_admin
from django.conf import settings
from firebase_admin import credentials, messaging
from firebase_admin import exceptions as firebase_exceptions

logger = logging.getLogger(__name__)

FIREBASE_APP_NAME = "backoffice-push"

_firebase_app: Optional[firebase_admin.App] = None
_firebase_lock = threading.Lock()


@dataclass
class PushResult:
    """Outcome of a push send."""
    message_id: Optional[str] = None
    token_invalid: bool = False

    @property
    def success(self) -> bool:
        return self.message_id is not None


def get_firebase_app() -> Optional[firebase_admin.App]:
    """Initialise the Firebase Admin SDK once, or return None if it is not configured."""
    global _firebase_app

    if _firebase_app is not None:
        return _firebase_app

    credentials_file = getattr(settings, "FIREBASE_CREDENTIALS_FILE", "")
    if not credentials_file:
        logger.warning("Firebase not configured. Push notifications disabled.")
        return None

    with _firebase_lock:
        if _firebase_app is None:
            try:
                _firebase_app = firebase_admin.initialize_app(
                    credentials.Certificate(credentials_file),
                    name=FIREBASE_APP_NAME,
                )
                logger.info("Firebase Admin SDK initialised")
            except Exception:
                logger.exception("Failed to initialise Firebase")
                return None

    return _firebase_app


def _build_message(token: str, title: str, body: str, data: Dict[str, str]) -> messaging.Message:
    return messaging.Message(
        notification=messaging.Notification(title=title, body=body),
        data=data,
        token=token,
        android=messaging.AndroidConfig(
            priority="high",
            notification=messaging.AndroidNotification(
                sound="default",
                channel_id="delivery_channel",
            ),
        ),
        apns=messaging.APNSConfig(
            payload=messaging.APNSPayload(aps=messaging.Aps(sound="default", badge=1)),
        ),
    )


def send_push_notification(
    token: str,
    title: str,
    body: str,
    data: Optional[Dict[str, Any]] = None,
) -> Optional[PushResult]:
    """
    Send one push notification to a device.

    Args:
        token: FCM registration token
        title: Notification title
        body: Notification body
        data: Extra key/value data (values are sent as strings)

    Returns:
        PushResult, or None if Firebase is unavailable or the send failed
    """
    if not token:
        return None

    app = get_firebase_app()
    if app is None:
        return None

    message = _build_message(
        token, title, body, {key: str(value) for key, value in (data or {}).items()}
    )

    try:
        message_id = messaging.send(message, app=app)
    except (messaging.UnregisteredError, messaging.SenderIdMismatchError, firebase_exceptions.InvalidArgumentError):
        logger.info("FCM rejected token %s...; marking it invalid", token[:12])
        return PushResult(token_invalid=True)
    except Exception:
        logger.exception("Failed to send push notification")
        return None

    logger.info("Push notification sent: %s", message_id)
    return PushResult(message_id=message_id)


PushSender = Callable[..., Optional[PushResult]]


def push_to_driver(
    driver,
    title: str,
    body: str,
    data: Optional[Dict[str, Any]] = None,
    sender: PushSender = send_push_notification,
) -> bool:
    """
    Best-effort push to a driver, purging the stored token when Firebase rejects it.

    Returns:
        True if the notification was delivered to Firebase
    """
    if driver is None or not driver.fcm_token:
        return False

    try:
        result = sender(driver.fcm_token, title, body, data)
    except Exception:
        logger.exception("Push sender failed for driver %s", driver.id)
        return False

    if result is None:
        return False

    if result.token_invalid:
        from drivers.services import clear_fcm_token
        try:
            clear_fcm_token(driver)
        except Exception:
            logger.exception("Failed to clear FCM token for driver %s", driver.id)
        return False

    return result.success
