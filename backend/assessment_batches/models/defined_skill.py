"""
DefinedSkill model - the academy's catalogue of assessable skills.

Used as the source list when a skill is added to an existing batch.
"""

from sqlalchemy import Column, Integer, Text, Float
from assessment_batches.database import Base


class DefinedSkill(Base):
    """SQLAlchemy model for the defined_skills table."""
    __tablename__ = "defined_skills"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False, unique=True,
                  doc="Skill name, used as the join key inside assessment skills")
    max_score = Column(Float, nullable=False, default=10,
                       doc="Maximum score a student can receive for this skill")

    def __repr__(self):
        return f"<DefinedSkill(id={self.id}, name='{self.name}', max={self.max_score})>"
