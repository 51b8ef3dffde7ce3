from assessment_batches.models.coach import Coach
from assessment_batches.models.student import Student
from assessment_batches.models.defined_skill import DefinedSkill
from assessment_batches.models.skill_assessment import SkillAssessment

__all__ = ["Coach", "Student", "DefinedSkill", "SkillAssessment"]
