from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from app.db import Base
from app.utils.datetime import naive_utc_now
import uuid

class NotificationLog(Base):
    """Audit record of one attempted push to one user. Written once, never updated."""
    __tablename__ = "notification_logs"

    # use a callable for default so new UUIDs are generated per-row
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    data = Column(JSON, nullable=True)
    success = Column(Boolean, nullable=False, default=False)
    sent_at = Column(DateTime, default=naive_utc_now, index=True)

    user = relationship("User", back_populates="notification_logs")
