"""
SkillAssessment model - one student's result on one assessment occasion.

Rows sharing the same (title, date) form a batch. Batches are never stored;
they are computed from these rows at query time.

The skills column holds an ordered JSON list:
    [{"name": "tumbling", "score": 8, "max_score": 10}, ...]
total_score must always equal the sum of the skill scores.
"""

import uuid
import json
from datetime import datetime, timezone
from sqlalchemy import Column, Text, Date, DateTime, Float, Integer, ForeignKey, Index, String
from sqlalchemy.orm import relationship
from assessment_batches.database import Base


class SkillAssessment(Base):
    """
    SQLAlchemy model for the skill_assessments table.

    status is either 'normal' or 'absent'. version is bumped on every
    update so a committer can detect records changed since they were loaded.
    """
    __tablename__ = "skill_assessments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique assessment record identifier")
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False,
                        doc="Student who was assessed")
    coach_id = Column(String(36), ForeignKey("coaches.id"), nullable=True,
                      doc="Assessing coach")
    title = Column(Text, nullable=False,
                   doc="Assessment name, first half of the batch key")
    date = Column(Date, nullable=False,
                  doc="Assessment date, second half of the batch key")
    status = Column(Text, nullable=False, default="normal",
                    doc="normal | absent")
    skills = Column(Text, nullable=False, default="[]",
                    doc="Ordered skill results as JSON")
    total_score = Column(Float, nullable=False, default=0,
                         doc="Sum of skill scores")
    version = Column(Integer, nullable=False, default=1,
                     doc="Incremented on every update")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    student = relationship("Student", back_populates="assessments")
    coach = relationship("Coach", back_populates="assessments")

    __table_args__ = (
        Index("ix_skill_assessments_title_date", "title", "date"),
        Index("ix_skill_assessments_coach_id", "coach_id"),
        Index("ix_skill_assessments_student_id", "student_id"),
    )

    @property
    def skills_list(self):
        """Parse skills JSON string to a list."""
        if isinstance(self.skills, list):
            return self.skills
        try:
            return json.loads(self.skills) if self.skills else []
        except (json.JSONDecodeError, TypeError):
            return []

    def __repr__(self):
        return f"<SkillAssessment(id={self.id}, title='{self.title}', date={self.date}, total={self.total_score})>"
