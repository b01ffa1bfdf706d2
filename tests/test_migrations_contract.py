from __future__ import annotations

from pathlib import Path
import re


VERSIONS = Path("migrations/versions")


def _source(name: str) -> str:
    return (VERSIONS / name).read_text(encoding="utf-8")


def test_revision_chain_is_linear() -> None:
    chain = {}
    for path in sorted(VERSIONS.glob("*.py")):
        source = path.read_text(encoding="utf-8")
        revision = re.search(r'^revision = "([^"]+)"', source, re.MULTILINE).group(1)
        down = re.search(r"^down_revision = (None|\"([^\"]+)\")", source, re.MULTILINE)
        chain[revision] = down.group(2)

    assert chain == {
        "20260301_0001": None,
        "20260302_0002": "20260301_0001",
        "20260303_0003": "20260302_0002",
        "20260304_0004": "20260303_0003",
    }


def test_auth_migration_declares_tables_and_indexes() -> None:
    source = _source("20260301_0001_users_and_auth.py")

    for table in ("users", "auth_sessions", "one_time_passwords", "login_attempts"):
        assert f'"{table}"' in source
    assert "uq_users_username" in source
    assert "uq_users_mobile_number" in source
    assert "uq_auth_sessions_token_hash" in source
    assert "ix_auth_sessions_user_expires_at" in source
    assert "ix_one_time_passwords_user_created_at" in source
    assert "ix_login_attempts_identifier_attempted_at" in source


def test_catalogue_and_image_migrations_declare_constraints() -> None:
    ideas = _source("20260302_0002_business_ideas_and_partnerships.py")
    images = _source("20260303_0003_images.py")

    assert "ck_business_ideas_budget_range" in ideas
    assert "ix_business_ideas_created_at" in ideas
    assert "ix_partnership_requests_idea_created_at" in ideas
    assert "ix_partnership_requests_status" in ideas

    assert "uq_image_variants_image_variant" in images
    assert "ix_images_business_idea_order" in images
    assert "ix_images_created_at" in images


def test_submission_migration_declares_moderation_schema() -> None:
    source = _source("20260304_0004_anonymous_submissions.py")

    for table in ("anonymous_submissions", "anonymous_submission_images", "submission_audit_logs"):
        assert f'"{table}"' in source
    assert "ck_anonymous_submissions_budget_range" in source
    assert "uq_anonymous_submissions_business_idea_id" in source
    assert "uq_anonymous_submission_images_image_id" in source
    assert "ix_anonymous_submissions_status_submitted_at" in source
    assert "ix_anonymous_submissions_submitter_ip_submitted_at" in source
    assert "ix_anonymous_submissions_flagged" in source
    assert "ix_submission_audit_logs_submission_created_at" in source
    assert 'op.drop_table("anonymous_submissions")' in source
