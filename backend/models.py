from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Boolean, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from db import Base

class Form(Base):
    __tablename__ = "forms"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    # list of field wire dicts, see fields.dump_fields
    fields = Column(JSON, nullable=False, default=list)
    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    submissions = relationship("Submission", back_populates="form")

class Submission(Base):
    __tablename__ = "submissions"
    id = Column(Integer, primary_key=True, index=True)
    # reference only: the form may change or be soft-deleted later
    form_id = Column(Integer, ForeignKey("forms.id"), index=True, nullable=False)
    form_version = Column(Integer, nullable=False, default=1)
    form_snapshot = Column(JSON, nullable=True)
    answers = Column(JSON, nullable=False, default=list)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    ip = Column(String(64), nullable=False, default="")
    form = relationship("Form", back_populates="submissions")
