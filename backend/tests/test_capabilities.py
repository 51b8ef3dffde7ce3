import pytest

from assessment_batches.capabilities import normalize_role, resolve_capabilities


@pytest.mark.parametrize("role", ["admin", "Admin", " Head Coach ", "head-coach", "master", "Administrator"])
def test_privileged_roles(role):
    caps = resolve_capabilities(role)
    assert caps.can_edit and caps.can_delete


@pytest.mark.parametrize("role", [None, "", "coach", "reception", "assistant coach", "headmaster of fun"])
def test_other_roles_get_nothing(role):
    caps = resolve_capabilities(role)
    assert not caps.can_edit and not caps.can_delete


def test_normalize_role():
    assert normalize_role("  Head   Coach") == "head_coach"
    assert normalize_role("MASTER") == "master"
