"""
Domain exceptions for the batch assessment engine.

Services raise these; the HTTP routes translate them into HTTPException
responses. Partial failures of multi-record writes are never raised, they
are returned as structured results (see services.committer and
services.deletion).
"""


class BatchError(Exception):
    """Base class for all engine errors."""


class EditValidationError(BatchError):
    """An edit was rejected; the working set is unchanged."""


class ScoreExceedsMaxError(EditValidationError):
    def __init__(self, skill_name: str, max_score: float, score: float):
        self.skill_name = skill_name
        self.max_score = max_score
        self.score = score
        super().__init__(f"Max score for {skill_name} is {max_score:g}")


class NegativeScoreError(EditValidationError):
    def __init__(self, skill_name: str, score: float):
        self.skill_name = skill_name
        self.score = score
        super().__init__(f"Score for {skill_name} cannot be negative")


class DuplicateSkillError(EditValidationError):
    def __init__(self, skill_name: str):
        self.skill_name = skill_name
        super().__init__(f"Skill already exists: {skill_name}")


class UnknownSkillError(EditValidationError):
    def __init__(self, skill_name: str):
        self.skill_name = skill_name
        super().__init__(f"Skill not in this batch: {skill_name}")


class UnknownRecordError(EditValidationError):
    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Record not in this batch: {record_id}")


class InvalidSkillDefinitionError(EditValidationError):
    pass


class SessionBusyError(BatchError):
    """An edit was attempted while the session's commit is in flight."""


class PermissionDeniedError(BatchError):
    """The caller lacks the edit or delete capability."""


class SessionNotFoundError(BatchError):
    pass


class StoreError(BatchError):
    """Transport or storage failure reported by the record store."""


class StaleRecordError(StoreError):
    """The record changed since it was loaded (version mismatch)."""

    def __init__(self, record_id: str, expected: int, actual: int):
        self.record_id = record_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Record {record_id} changed since load (version {expected} != {actual})")


class RecordNotFoundError(StoreError):
    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Record not found: {record_id}")
