"""
Coach model - staff members who assess students or are assigned to them.

A coach appears in two independent roles for a skill assessment:
- assessing coach: the coach who ran the assessment (skill_assessments.coach_id)
- responsible coach: the coach permanently assigned to the student (students.coach_id)
"""

import uuid
from sqlalchemy import Column, Text, String
from sqlalchemy.orm import relationship
from assessment_batches.database import Base


class Coach(Base):
    """SQLAlchemy model for the coaches table."""
    __tablename__ = "coaches"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique coach identifier")
    full_name = Column(Text, nullable=False,
                       doc="Coach's display name")
    role = Column(Text, nullable=True,
                  doc="Free-text staff role, e.g. 'Head Coach' or 'admin'")

    students = relationship("Student", back_populates="coach")
    assessments = relationship("SkillAssessment", back_populates="coach")

    @property
    def first_name(self):
        return (self.full_name or "").split(" ")[0]

    def __repr__(self):
        return f"<Coach(id={self.id}, name='{self.full_name}', role='{self.role}')>"
