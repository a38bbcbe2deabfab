from __future__ import annotations

import pytest

from gungnr_jobs.job_status import (
    JobBadgeTone,
    is_pending_job,
    is_terminal,
    job_action_label,
    job_status_label,
    job_status_tone,
)


@pytest.mark.parametrize(
    "status,tone",
    [
        ("completed", JobBadgeTone.OK),
        ("COMPLETED", JobBadgeTone.OK),
        ("running", JobBadgeTone.WARN),
        ("failed", JobBadgeTone.ERROR),
        ("pending", JobBadgeTone.NEUTRAL),
        ("pending_host", JobBadgeTone.NEUTRAL),
        ("", JobBadgeTone.NEUTRAL),
        (None, JobBadgeTone.NEUTRAL),
    ],
)
def test_status_tone(status, tone):
    assert job_status_tone(status) == tone


@pytest.mark.parametrize(
    "status,label",
    [
        ("pending", "queued"),
        ("", "pending"),
        (None, "pending"),
        ("Running", "running"),
        ("completed", "completed"),
        ("failed", "failed"),
        ("pending_host", "pending host"),
        ("waiting_for_lock", "waiting for lock"),
    ],
)
def test_status_label(status, label):
    assert job_status_label(status) == label


def test_only_completed_and_failed_are_terminal():
    assert is_terminal("completed")
    assert is_terminal("failed")
    assert is_terminal("Failed")
    for status in ("pending", "running", "pending_host", "cancelled", "", None):
        assert not is_terminal(status), status


def test_pending_job_is_exact_match():
    assert is_pending_job("pending")
    assert not is_pending_job("PENDING")
    assert not is_pending_job("pending_host")
    assert not is_pending_job(None)


def test_action_labels():
    assert job_action_label("quick_service") == "Quick service"
    assert job_action_label("create_template") == "Create template"
    assert job_action_label("deploy_existing") == "Deploy existing"
    assert job_action_label("restart_stack") == "restart stack"
    assert job_action_label("") == "Deploy"
    assert job_action_label(None) == "Deploy"
