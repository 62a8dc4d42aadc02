from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base


class TestReport(Base):
    __tablename__ = "test_reports"
    __test__ = False  # keep pytest from collecting the model

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    file_url = Column(String(512), nullable=False)
    # Structured data extracted from the document, when available
    extracted_data = Column(JSON, nullable=True)

    uploaded_at = Column(DateTime, server_default=func.now())

    patient = relationship("User")

    def __repr__(self):
        return f"<TestReport(id={self.id}, title='{self.title}')>"
