import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime
from backend.app.core.database import Base

class AppUserORM(Base):
    __tablename__ = "app_users"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(255), nullable=False)
    hashed_password = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, default="user")  # UserRole values
    status = Column(String(30), nullable=False, default="pending_approval", index=True)  # UserStatus values
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self):
        return f"<AppUser {self.email} role={self.role} status={self.status}>"
