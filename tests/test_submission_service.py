from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid

import pytest
from sqlalchemy import select

from partner_me.core.errors import NotFoundError, StateError, ValidationError
from partner_me.media.ownership import OwnedByBusinessIdea, OwnedBySubmission, resolve_owners
from partner_me.storage.models import AnonymousSubmission, BusinessIdea, Image, User
from partner_me.submissions import service
from partner_me.submissions.audit import ApprovedDetails, CreatedDetails, EditedDetails, list_audit_entries, read_audit_details
from tests.conftest import build_sqlite_session_factory, reset_runtime_caches


def _seed_image(session, *, business_idea_id: Optional[str] = None, created_at: Optional[datetime] = None) -> str:
    image_id = str(uuid.uuid4())
    session.add(
        Image(
            id=image_id,
            business_idea_id=business_idea_id,
            filename="photo.png",
            storage_path=f"temp/{image_id}/full.webp",
            mime_type="image/png",
            size=1024,
            width=640,
            height=480,
            created_at=created_at or datetime.now(timezone.utc),
        )
    )
    session.commit()
    return image_id


def _seed_admin(session) -> str:
    admin = User(username=f"admin_{uuid.uuid4().hex[:8]}", is_admin=True)
    session.add(admin)
    session.commit()
    return admin.id


def _payload(image_ids, **overrides):
    payload = {
        "title": "Community garden kits",
        "description": "Raised-bed kits delivered to apartment blocks.",
        "budget_min": 1000,
        "budget_max": 5000,
        "contact_email": "maker@garden.org",
        "image_ids": image_ids,
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def session():
    reset_runtime_caches()
    factory = build_sqlite_session_factory()
    with factory() as db_session:
        yield db_session
    reset_runtime_caches()


def test_create_submission_links_images_and_writes_audit(session) -> None:
    first = _seed_image(session)
    second = _seed_image(session)

    submission = service.create_submission(session, payload=_payload([first, second]), submitter_ip="198.51.100.7")

    assert submission.status == "PENDING"
    assert submission.submitter_ip == "198.51.100.7"
    assert submission.flagged_for_review is False
    assert submission.flag_reason is None
    assert [link.image_id for link in sorted(submission.image_links, key=lambda link: link.order)] == [first, second]

    owners = resolve_owners(session, [first, second])
    assert owners[first] == OwnedBySubmission(submission.id)

    entries = list_audit_entries(session, submission_id=submission.id)
    assert [entry.action for entry in entries] == ["CREATED"]
    details = read_audit_details(entries[0])
    assert isinstance(details, CreatedDetails)
    assert details.image_count == 2
    assert details.spam_check.confidence == 0.0


def test_create_submission_flags_spammy_content(session) -> None:
    image_id = _seed_image(session)

    submission = service.create_submission(
        session,
        payload=_payload(
            [image_id],
            title="MAKE MONEY FAST NOW",
            description="WORK FROM HOME AND EARN!!!!! NO RISK",
        ),
        submitter_ip="198.51.100.7",
    )

    assert submission.flagged_for_review is True
    assert submission.flag_reason.startswith("Spam detection (confidence: 60%)")


def test_create_submission_rejects_unknown_and_taken_images(session) -> None:
    free = _seed_image(session)
    service.create_submission(session, payload=_payload([free]), submitter_ip="198.51.100.7")

    with pytest.raises(ValidationError) as unknown:
        service.create_submission(session, payload=_payload(["missing-image"]), submitter_ip="198.51.100.7")
    assert unknown.value.details == {"image_ids": ["missing-image"]}

    with pytest.raises(ValidationError) as taken:
        service.create_submission(session, payload=_payload([free]), submitter_ip="198.51.100.8")
    assert taken.value.details == {"image_ids": [free]}


def test_create_submission_validates_payload(session) -> None:
    image_id = _seed_image(session)

    with pytest.raises(ValidationError) as no_contact:
        service.create_submission(
            session,
            payload=_payload([image_id], contact_email="", contact_phone=None),
            submitter_ip="198.51.100.7",
        )
    assert no_contact.value.details == {"__root__": ["At least one contact method (email or phone) is required"]}

    with pytest.raises(ValidationError):
        service.create_submission(session, payload=_payload([image_id], budget_min=900, budget_max=100), submitter_ip="1.1.1.1")
    with pytest.raises(ValidationError):
        service.create_submission(session, payload=_payload([]), submitter_ip="1.1.1.1")
    with pytest.raises(ValidationError) as no_ip:
        service.create_submission(session, payload=_payload([image_id]), submitter_ip=" ")
    assert no_ip.value.code == "IP_EXTRACTION_FAILED"


@pytest.mark.parametrize("blank_phone", ["", "   ", None])
def test_create_submission_accepts_missing_phone(session, blank_phone) -> None:
    submission = service.create_submission(
        session,
        payload=_payload([_seed_image(session)], contact_phone=blank_phone),
        submitter_ip="198.51.100.7",
    )

    assert submission.contact_phone is None
    assert submission.contact_email == "maker@garden.org"


def test_create_submission_rejects_malformed_phone(session) -> None:
    with pytest.raises(ValidationError) as exc:
        service.create_submission(
            session,
            payload=_payload([_seed_image(session)], contact_phone="call me maybe"),
            submitter_ip="198.51.100.7",
        )

    assert "contact_phone" in exc.value.details


def test_list_pending_filters_and_paginates(session) -> None:
    now = datetime.now(timezone.utc)
    organic = service.create_submission(
        session,
        payload=_payload([_seed_image(session)], title="Juice bar", description="Sells 100% organic juice downtown."),
        submitter_ip="10.0.0.1",
    )
    similar = service.create_submission(
        session,
        payload=_payload(
            [_seed_image(session)],
            title="Juice truck",
            description="Sells 1000 organic juices a day.",
            contact_email=None,
            contact_phone="+1 415 555 0134",
        ),
        submitter_ip="10.0.0.2",
    )
    old = service.create_submission(
        session,
        payload=_payload([_seed_image(session)], title="Bike repair"),
        submitter_ip="10.0.0.3",
    )
    organic.submitted_at = now - timedelta(hours=1)
    similar.submitted_at = now - timedelta(hours=2)
    old.submitted_at = now - timedelta(days=10)
    session.commit()
    service.flag_submission(session, submission_id=similar.id, reason="Looks duplicated")

    everything = service.list_pending_submissions(session)
    assert [item.id for item in everything.items] == [organic.id, similar.id, old.id]
    assert everything.total == 3

    percent = service.list_pending_submissions(session, filters={"search": "100%"})
    assert [item.id for item in percent.items] == [organic.id]

    case_insensitive = service.list_pending_submissions(session, filters={"search": "JUICE"})
    assert {item.id for item in case_insensitive.items} == {organic.id, similar.id}

    flagged = service.list_pending_submissions(session, filters={"flagged": True})
    assert [item.id for item in flagged.items] == [similar.id]

    recent = service.list_pending_submissions(session, filters={"date_from": now - timedelta(days=1)})
    assert {item.id for item in recent.items} == {organic.id, similar.id}

    dated = service.list_pending_submissions(
        session,
        filters={"date_from": now - timedelta(days=11), "date_to": now - timedelta(days=9)},
    )
    assert [item.id for item in dated.items] == [old.id]

    second_page = service.list_pending_submissions(session, filters={"page": 2, "limit": 2})
    assert [item.id for item in second_page.items] == [old.id]
    assert second_page.total == 3
    assert second_page.total_pages == 2

    service.reject_submission(session, submission_id=old.id, reviewer_id=_seed_admin(session))
    assert service.list_pending_submissions(session).total == 2


def test_list_pending_combined_filters_intersect(session) -> None:
    now = datetime.now(timezone.utc)

    def submit(title: str, *, age: timedelta, flagged: bool, has_contact: bool = True) -> str:
        submission = service.create_submission(
            session,
            payload=_payload([_seed_image(session)], title=title, description=f"{title} for local customers."),
            submitter_ip="10.0.0.9",
        )
        if flagged:
            service.flag_submission(session, submission_id=submission.id, reason="Needs a second look")
        submission.submitted_at = now - age
        if not has_contact:
            submission.contact_email = None
            submission.contact_phone = None
        session.commit()
        return submission.id

    app_dev = submit("Mobile App Development", age=timedelta(hours=1), flagged=True)
    game = submit("Mobile Game", age=timedelta(hours=2), flagged=False)
    kiosk = submit("Mobile Phone Kiosk", age=timedelta(hours=3), flagged=True, has_contact=False)
    repair = submit("Mobile Repair Van", age=timedelta(days=10), flagged=True)
    submit("Bakery", age=timedelta(hours=4), flagged=True)

    def ids(**filters) -> set:
        return {item.id for item in service.list_pending_submissions(session, filters=filters).items}

    single = {
        "search": {"search": "mobile"},
        "has_contact": {"has_contact": True},
        "flagged": {"flagged": True},
        "dates": {"date_from": now - timedelta(days=1), "date_to": now},
    }
    assert ids(**single["search"]) == {app_dev, game, kiosk, repair}
    assert kiosk not in ids(**single["has_contact"])
    assert game not in ids(**single["flagged"])
    assert repair not in ids(**single["dates"])

    combined_filters = {key: value for criteria in single.values() for key, value in criteria.items()}
    expected = set.intersection(*(ids(**criteria) for criteria in single.values()))
    combined = service.list_pending_submissions(session, filters=combined_filters)
    assert {item.id for item in combined.items} == expected == {app_dev}
    assert [item.title for item in combined.items] == ["Mobile App Development"]
    assert combined.total == 1

    without_contact = dict(combined_filters, has_contact=False)
    assert ids(**without_contact) == ids(has_contact=False) & ids(**single["search"]) == {kiosk}
    assert ids(**dict(without_contact, flagged=False)) == set()


def test_list_pending_rejects_bad_filters(session) -> None:
    now = datetime.now(timezone.utc)

    with pytest.raises(ValidationError):
        service.list_pending_submissions(session, filters={"limit": 101})
    with pytest.raises(ValidationError):
        service.list_pending_submissions(session, filters={"date_from": now, "date_to": now - timedelta(days=1)})


def test_approve_creates_business_idea_and_moves_images(session) -> None:
    admin_id = _seed_admin(session)
    first = _seed_image(session)
    second = _seed_image(session)
    submission = service.create_submission(session, payload=_payload([first, second]), submitter_ip="10.0.0.1")

    result = service.approve_submission(
        session,
        submission_id=submission.id,
        reviewer_id=admin_id,
        overrides={"title": "Garden kits for apartments", "budget_max": 6000},
    )

    idea = result.business_idea
    assert idea.title == "Garden kits for apartments"
    assert idea.description == "Raised-bed kits delivered to apartment blocks."
    assert (idea.budget_min, idea.budget_max) == (1000, 6000)

    stored = session.get(AnonymousSubmission, submission.id)
    assert stored.status == "APPROVED"
    assert stored.business_idea_id == idea.id
    assert stored.approved_by_id == admin_id
    assert stored.reviewed_at is not None

    images = {image.id: image for image in session.scalars(select(Image)).all()}
    assert images[first].business_idea_id == idea.id
    assert (images[first].order, images[second].order) == (0, 1)
    assert resolve_owners(session, [second])[second] == OwnedByBusinessIdea(idea.id)

    approval = list_audit_entries(session, submission_id=submission.id)[0]
    details = read_audit_details(approval)
    assert approval.action == "APPROVED"
    assert approval.performed_by == admin_id
    assert isinstance(details, ApprovedDetails)
    assert details.business_idea_id == idea.id
    assert details.image_ids == [first, second]
    assert details.overrides["title"].to == "Garden kits for apartments"
    assert details.overrides["budget_max"].from_ == 5000


def test_approve_is_at_most_once(session) -> None:
    admin_id = _seed_admin(session)
    submission = service.create_submission(session, payload=_payload([_seed_image(session)]), submitter_ip="10.0.0.1")
    service.approve_submission(session, submission_id=submission.id, reviewer_id=admin_id)

    with pytest.raises(StateError) as exc:
        service.approve_submission(session, submission_id=submission.id, reviewer_id=admin_id)

    assert exc.value.current_status == "APPROVED"
    assert exc.value.status_code == 409
    assert str(exc.value) == "Cannot approve submission with status APPROVED. Only PENDING submissions can be approved."
    assert len(session.scalars(select(BusinessIdea)).all()) == 1


def test_losing_a_concurrent_approval_rolls_back(session, monkeypatch) -> None:
    admin_id = _seed_admin(session)
    submission = service.create_submission(session, payload=_payload([_seed_image(session)]), submitter_ip="10.0.0.1")
    service.reject_submission(session, submission_id=submission.id, reviewer_id=admin_id)
    # Simulate a reviewer that read PENDING just before another one committed.
    monkeypatch.setattr(service, "ensure_pending", lambda status, action: None)

    with pytest.raises(StateError) as exc:
        service.approve_submission(session, submission_id=submission.id, reviewer_id=admin_id)

    assert exc.value.current_status == "REJECTED"
    assert session.scalars(select(BusinessIdea)).all() == []
    image = session.scalars(select(Image)).one()
    assert image.business_idea_id is None


def test_approve_rejects_inverted_budget_overrides(session) -> None:
    admin_id = _seed_admin(session)
    submission = service.create_submission(session, payload=_payload([_seed_image(session)]), submitter_ip="10.0.0.1")

    with pytest.raises(ValidationError):
        service.approve_submission(
            session,
            submission_id=submission.id,
            reviewer_id=admin_id,
            overrides={"budget_min": 9000},
        )

    assert session.get(AnonymousSubmission, submission.id).status == "PENDING"


def test_reject_records_reason_and_blocks_later_approval(session) -> None:
    admin_id = _seed_admin(session)
    submission = service.create_submission(session, payload=_payload([_seed_image(session)]), submitter_ip="10.0.0.1")

    rejected = service.reject_submission(
        session,
        submission_id=submission.id,
        reviewer_id=admin_id,
        reason="  Not a fit for the marketplace  ",
    )

    assert rejected.status == "REJECTED"
    assert rejected.rejection_reason == "Not a fit for the marketplace"
    assert rejected.rejected_by_id == admin_id

    with pytest.raises(StateError) as exc:
        service.approve_submission(session, submission_id=submission.id, reviewer_id=admin_id)
    assert "Only PENDING submissions can be approved" in str(exc.value)

    with pytest.raises(StateError):
        service.reject_submission(session, submission_id=submission.id, reviewer_id=admin_id)


def test_images_of_rejected_submission_cannot_be_resubmitted(session) -> None:
    image_id = _seed_image(session)
    submission = service.create_submission(session, payload=_payload([image_id]), submitter_ip="10.0.0.1")
    service.reject_submission(session, submission_id=submission.id, reviewer_id=_seed_admin(session))

    with pytest.raises(ValidationError) as exc:
        service.create_submission(session, payload=_payload([image_id]), submitter_ip="10.0.0.2")

    assert exc.value.details == {"image_ids": [image_id]}


def test_concurrent_claim_of_same_image_is_a_validation_error(session, monkeypatch) -> None:
    image_id = _seed_image(session)
    winner = service.create_submission(session, payload=_payload([image_id]), submitter_ip="198.51.100.7")
    # The loser's ownership check ran before the winner committed.
    monkeypatch.setattr(service, "_taken_image_ids", lambda *args: [])

    with pytest.raises(ValidationError) as exc:
        service.create_submission(session, payload=_payload([image_id]), submitter_ip="198.51.100.8")

    assert exc.value.code == "VALIDATION_ERROR"
    assert exc.value.message == "One or more images are already in use"
    assert exc.value.details == {"image_ids": [image_id]}
    assert [row.id for row in session.scalars(select(AnonymousSubmission)).all()] == [winner.id]
    assert resolve_owners(session, [image_id])[image_id] == OwnedBySubmission(winner.id)


def test_reject_without_reason(session) -> None:
    submission = service.create_submission(session, payload=_payload([_seed_image(session)]), submitter_ip="10.0.0.1")

    rejected = service.reject_submission(session, submission_id=submission.id, reviewer_id=_seed_admin(session))

    assert rejected.rejection_reason is None


def test_update_submission_records_changes(session) -> None:
    admin_id = _seed_admin(session)
    submission = service.create_submission(session, payload=_payload([_seed_image(session)]), submitter_ip="10.0.0.1")

    updated = service.update_submission(
        session,
        submission_id=submission.id,
        reviewer_id=admin_id,
        changes={"title": "Garden kits", "budget_min": 1000, "contact_phone": "+1 415 555 0134"},
    )

    assert updated.title == "Garden kits"
    assert updated.contact_phone == "+1 415 555 0134"
    entry = list_audit_entries(session, submission_id=submission.id)[0]
    details = read_audit_details(entry)
    assert entry.action == "EDITED"
    assert isinstance(details, EditedDetails)
    assert set(details.changes) == {"title", "contact_phone"}
    assert details.changes["title"].from_ == "Community garden kits"

    service.update_submission(session, submission_id=submission.id, reviewer_id=admin_id, changes={"title": "Garden kits"})
    assert len(list_audit_entries(session, submission_id=submission.id)) == 2


def test_update_submission_guards_invariants(session) -> None:
    admin_id = _seed_admin(session)
    submission = service.create_submission(session, payload=_payload([_seed_image(session)]), submitter_ip="10.0.0.1")

    with pytest.raises(ValidationError):
        service.update_submission(session, submission_id=submission.id, reviewer_id=admin_id, changes={"budget_min": 9000})
    with pytest.raises(ValidationError):
        service.update_submission(session, submission_id=submission.id, reviewer_id=admin_id, changes={"contact_email": ""})

    service.reject_submission(session, submission_id=submission.id, reviewer_id=admin_id)
    with pytest.raises(StateError) as exc:
        service.update_submission(session, submission_id=submission.id, reviewer_id=admin_id, changes={"title": "Later"})
    assert "Only PENDING submissions can be edited" in str(exc.value)


def test_update_submission_can_clear_phone(session) -> None:
    admin_id = _seed_admin(session)
    submission = service.create_submission(
        session,
        payload=_payload([_seed_image(session)], contact_phone="+1 415 555 0134"),
        submitter_ip="10.0.0.1",
    )

    updated = service.update_submission(
        session,
        submission_id=submission.id,
        reviewer_id=admin_id,
        changes={"contact_phone": None},
    )

    assert updated.contact_phone is None
    assert updated.contact_email == "maker@garden.org"
    details = read_audit_details(list_audit_entries(session, submission_id=submission.id)[0])
    assert set(details.changes) == {"contact_phone"}
    assert details.changes["contact_phone"].to is None

    service.update_submission(session, submission_id=submission.id, reviewer_id=admin_id, changes={"contact_phone": ""})
    assert len(list_audit_entries(session, submission_id=submission.id)) == 2


def test_flag_and_unflag(session) -> None:
    submission = service.create_submission(session, payload=_payload([_seed_image(session)]), submitter_ip="10.0.0.1")

    flagged = service.flag_submission(session, submission_id=submission.id)
    assert flagged.flagged_for_review is True
    assert flagged.flag_reason == "Flagged by reviewer"

    unflagged = service.unflag_submission(session, submission_id=submission.id)
    assert unflagged.flagged_for_review is False
    assert unflagged.flag_reason is None
    actions = [entry.action for entry in list_audit_entries(session, submission_id=submission.id)]
    assert sorted(actions) == ["CREATED", "FLAGGED", "UNFLAGGED"]


def test_unknown_submission_raises_not_found(session) -> None:
    with pytest.raises(NotFoundError) as exc:
        service.approve_submission(session, submission_id="missing", reviewer_id="admin")
    assert exc.value.code == "SUBMISSION_NOT_FOUND"

    with pytest.raises(NotFoundError):
        service.get_submission(session, submission_id="missing")


def test_stats_summarise_queue(session) -> None:
    now = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)

    def _row(status: str, *, submitted_at: datetime, reviewed_at: Optional[datetime] = None, flagged: bool = False):
        session.add(
            AnonymousSubmission(
                title="Row",
                description="A row used for statistics.",
                budget_min=1,
                budget_max=2,
                contact_email="a@b.co",
                submitter_ip="10.0.0.1",
                status=status,
                flagged_for_review=flagged,
                submitted_at=submitted_at,
                reviewed_at=reviewed_at,
            )
        )

    _row("PENDING", submitted_at=now - timedelta(hours=1))
    _row("PENDING", submitted_at=now - timedelta(hours=2), flagged=True)
    _row("APPROVED", submitted_at=now - timedelta(hours=10), reviewed_at=now - timedelta(hours=6))
    _row("REJECTED", submitted_at=now - timedelta(days=40), reviewed_at=now - timedelta(days=35))
    session.commit()

    stats = service.get_submission_stats(session, now=now)

    assert (stats.pending, stats.approved, stats.rejected) == (2, 1, 1)
    assert stats.approved_last_30_days == 1
    assert stats.rejected_last_30_days == 0
    assert stats.flagged_count == 1
    assert stats.average_review_time_hours == 62.0
