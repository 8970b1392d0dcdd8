from sqlalchemy import Column, Integer, String, Boolean, DateTime, CheckConstraint
from app.core.database import Base
from app.utils.clock import utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    passwordhash = Column(String(255), nullable=False)
    role = Column(String(20), default="Contributor", nullable=False)
    # False means the account is banned
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "role IN ('Admin','ProjectManager','Contributor')", name="user_role_check"
        ),
    )
