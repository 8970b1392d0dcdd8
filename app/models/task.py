from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint
from app.core.database import Base
from app.utils.clock import utcnow


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(String(1000), default="", nullable=False)
    status = Column(String(20), default="ToDo", nullable=False)
    priority = Column(String(20), default="Medium", nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    due_date = Column(DateTime(timezone=True), nullable=True)

    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    created_by_user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    assigned_to_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    parent_task_id = Column(Integer, ForeignKey("tasks.id"), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('ToDo','InProgress','InReview','Done')", name="task_status_check"
        ),
        CheckConstraint(
            "priority IN ('Low','Medium','High','Critical')", name="task_priority_check"
        ),
    )
