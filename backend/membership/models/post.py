from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, String, func, text

from membership.db.base import Base


class Post(Base):
    __tablename__ = "posts"

    id = Column(String(36), primary_key=True)
    title = Column(String(255), nullable=False, default="")
    published = Column(Boolean, nullable=False, default=False, server_default=text("false"))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
