from sqlalchemy import BigInteger, Column, Integer, String, DateTime, ForeignKey
from app.core.database import Base
from app.utils.clock import utcnow


class TaskAttachment(Base):
    __tablename__ = "task_attachments"

    id = Column(Integer, primary_key=True, index=True)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    content_type = Column(String(100), default="", nullable=False)
    file_size = Column(BigInteger, default=0, nullable=False)
    uploaded_at = Column(DateTime(timezone=True), default=utcnow)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False, index=True)
    uploaded_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
