from dropdeck.notifications.preferences import NotificationPreferences, PreferencesManager, should_notify
from dropdeck.notifications.reconciler import Notification, NotificationReconciler, notification_from_event

__all__ = [
    "Notification",
    "NotificationPreferences",
    "NotificationReconciler",
    "PreferencesManager",
    "notification_from_event",
    "should_notify",
]
