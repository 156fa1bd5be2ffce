from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class TemplateModel(Base):
    __tablename__ = "form_templates"

    id = Column(String, primary_key=True)
    name = Column(String)
    category = Column(String, index=True)
    data_json = Column(Text)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)


class SubmissionModel(Base):
    __tablename__ = "submissions"

    id = Column(String, primary_key=True)
    form_template_id = Column(String, index=True)
    submitted_by = Column(String, index=True)
    status = Column(String, index=True)
    data_json = Column(Text)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime)
    updated_at = Column(DateTime, nullable=True)


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True)
    recipient_id = Column(String, index=True)
    form_id = Column(String, index=True)
    type = Column(String)
    title = Column(Text)
    message = Column(Text)
    read = Column(Integer, default=0)
    created_at = Column(DateTime)
