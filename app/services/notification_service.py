# app/services/notification_service.py
from app.celery_worker import celery_app
from app.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Serwis do wysylania powiadomien.
    Uzywa Celery do asynchronicznego przetwarzania.
    """

    @staticmethod
    def send_order_notification(user_id: int, order_id: int, order_number: str):
        """
        Wysyla powiadomienie o przyjeciu zamowienia.
        """
        send_order_notification_task.delay(user_id, order_id, order_number)


@celery_app.task(name="app.services.notification_service.send_order_notification_task")
def send_order_notification_task(user_id: int, order_id: int, order_number: str):
    """
    Celery task - w prawdziwym systemie wyslalby email/SMS/push.
    Teraz tylko loguje.
    """
    logger.info(f"[NOTIFICATION] User {user_id}: Order {order_number} (id {order_id}) received, awaiting payment")

    return {"user_id": user_id, "order_id": order_id, "order_number": order_number, "status": "sent"}
