"""
Capability resolution for batch editing and deletion.

The role string of the signed-in user is normalised once into one of the
enumerated privileged roles; the engine itself only ever sees the two
booleans of Capabilities.
"""

import re
from typing import Optional

from fastapi import Header
from pydantic import BaseModel

from assessment_batches.config import PRIVILEGED_ROLES

# Common spellings mapped onto the canonical role names
ROLE_ALIASES = {
    "administrator": "admin",
    "head": "head_coach",
    "headcoach": "head_coach",
    "head_coach": "head_coach",
    "master_coach": "master",
}


class Capabilities(BaseModel):
    can_edit: bool = False
    can_delete: bool = False


def normalize_role(role: Optional[str]) -> str:
    """'  Head Coach ' -> 'head_coach'"""
    if not role:
        return ""
    role = re.sub(r"[\s\-]+", "_", role.strip().lower())
    return ROLE_ALIASES.get(role, role)


def resolve_capabilities(role: Optional[str]) -> Capabilities:
    privileged = normalize_role(role) in PRIVILEGED_ROLES
    return Capabilities(can_edit=privileged, can_delete=privileged)


def get_capabilities(x_user_role: Optional[str] = Header(None)) -> Capabilities:
    """FastAPI dependency reading the caller's role from the X-User-Role header."""
    return resolve_capabilities(x_user_role)
