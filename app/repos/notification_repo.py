from sqlalchemy.orm import Session

from app.data.models.notification import NotificationModel


class NotificationRepo:
    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: int, type: str, message: str) -> NotificationModel:
        notification = NotificationModel(user_id=user_id, type=type, message=message, is_read=False)
        self.db.add(notification)
        self.db.flush()
        return notification
