"""
Student model - gymnasts enrolled at the academy.

Each student may have a responsible coach (students.coach_id). Skill
assessments reference students through skill_assessments.student_id.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, String, ForeignKey
from sqlalchemy.orm import relationship
from assessment_batches.database import Base


class Student(Base):
    """SQLAlchemy model for the students table."""
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique student identifier")
    full_name = Column(Text, nullable=False,
                       doc="Student's full name")
    coach_id = Column(String(36), ForeignKey("coaches.id"), nullable=True,
                      doc="Responsible coach assigned to this student")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        doc="Timestamp when student record was created")

    coach = relationship("Coach", back_populates="students")
    assessments = relationship("SkillAssessment", back_populates="student")

    def __repr__(self):
        return f"<Student(id={self.id}, name='{self.full_name}', coach={self.coach_id})>"
