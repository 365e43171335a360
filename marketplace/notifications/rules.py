from marketplace.notifications.events import NotificationEvent
from marketplace.notifications.channels import Channel, LiveEvent


NOTIFICATION_RULES = {

    NotificationEvent.ORDER_PLACED: {
        Channel.INAPP: True,
        Channel.LIVE_PUSH: True,
    },

    NotificationEvent.ORDER_STATUS_UPDATED: {
        Channel.INAPP: True,
        Channel.LIVE_PUSH: True,
    },

    NotificationEvent.PAYMENT_CREATED: {
        Channel.INAPP: True,
        Channel.LIVE_PUSH: False,
    },

    NotificationEvent.PAYMENT_COMPLETED: {
        Channel.INAPP: True,
        Channel.LIVE_PUSH: True,
    },

    NotificationEvent.PAYMENT_FAILED: {
        Channel.INAPP: True,
        Channel.LIVE_PUSH: True,
    },

    NotificationEvent.PAYMENT_PENDING: {
        Channel.INAPP: True,
        Channel.LIVE_PUSH: True,
    },

    NotificationEvent.PAYMENT_APPROVED: {
        Channel.INAPP: True,
        Channel.LIVE_PUSH: True,
    },

    NotificationEvent.PAYMENT_REJECTED: {
        Channel.INAPP: True,
        Channel.LIVE_PUSH: True,
    },

}


LIVE_EVENT_NAMES = {
    NotificationEvent.ORDER_PLACED: LiveEvent.NOTIFICATION,
    NotificationEvent.ORDER_STATUS_UPDATED: LiveEvent.ORDER_STATUS_UPDATED,
    NotificationEvent.PAYMENT_CREATED: LiveEvent.PAYMENT_STATUS_UPDATED,
    NotificationEvent.PAYMENT_COMPLETED: LiveEvent.PAYMENT_STATUS_UPDATED,
    NotificationEvent.PAYMENT_FAILED: LiveEvent.PAYMENT_STATUS_UPDATED,
    NotificationEvent.PAYMENT_PENDING: LiveEvent.NOTIFICATION,
    NotificationEvent.PAYMENT_APPROVED: LiveEvent.PAYMENT_STATUS_UPDATED,
    NotificationEvent.PAYMENT_REJECTED: LiveEvent.PAYMENT_STATUS_UPDATED,
}
