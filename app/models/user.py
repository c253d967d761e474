from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.common import TimestampMixin, UUIDPrimaryKeyMixin


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    records = relationship("Record", back_populates="owner", cascade="all, delete-orphan", passive_deletes=True)
    bulk_jobs = relationship(
        "BulkOperationJob", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
