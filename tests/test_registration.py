from datetime import date

import pytest
from sqlalchemy import select

from conftest import make_event, make_rider, make_route
from randonneurs import models
from randonneurs.ccn import CCNMember, MEMBERSHIP_INDIVIDUAL
from randonneurs.errors import MembershipError
from randonneurs.schemas import PermanentRegistrationData, RegistrationData
from randonneurs.services.registration import (
    STATUS_INCOMPLETE_MEMBERSHIP,
    complete_registration_with_rider,
    permanent_event_slug,
    register_for_event,
    register_for_permanent,
)

TODAY = date(2026, 4, 1)


class FakeCCN:
    def __init__(self, member=None):
        self.member = member

    def search(self, first_name, last_name):
        return self.member


def _data(event, **overrides) -> RegistrationData:
    values = dict(
        event_id=event.id,
        first_name="Alice",
        last_name="Walker",
        email="Alice@Example.org ",
        gender="F",
        notes="First brevet!",
        emergency_contact_name="Bob Walker",
        emergency_contact_phone="555-0100",
    )
    values.update(overrides)
    return RegistrationData(**values)


def test_new_rider_is_created_and_registered(session, chapter):
    event = make_event(session, chapter)
    outcome = register_for_event(session, _data(event), today=TODAY)

    assert outcome.success
    rider = session.execute(select(models.Rider)).scalar_one()
    assert rider.email == "alice@example.org"
    assert rider.gender == "F"
    assert rider.slug.startswith("alice-")
    assert outcome.registration.status == "registered"

    msg = outcome.email
    assert msg["To"] == "alice@example.org"
    assert msg["Cc"] == "vp-toronto@randonneursontario.ca"
    assert "Spring Classic" in msg["Subject"]


def test_existing_rider_is_updated(session, chapter):
    rider = make_rider(session, first="Al", email="alice@example.org")
    event = make_event(session, chapter)
    register_for_event(session, _data(event), today=TODAY)

    session.expire_all()
    assert session.get(models.Rider, rider.id).first_name == "Alice"
    assert session.execute(select(models.Rider)).scalars().all() == [session.get(models.Rider, rider.id)]


def test_duplicate_registration_is_refused(session, chapter):
    event = make_event(session, chapter)
    register_for_event(session, _data(event), today=TODAY)
    with pytest.raises(ValueError, match="already registered"):
        register_for_event(session, _data(event), today=TODAY)


@pytest.mark.parametrize("field", ["first_name", "last_name", "email"])
def test_required_fields(session, chapter, field):
    event = make_event(session, chapter)
    with pytest.raises(ValueError, match="Missing required fields"):
        register_for_event(session, _data(event, **{field: "  "}), today=TODAY)


def test_closed_event(session, chapter):
    event = make_event(session, chapter, status="cancelled")
    with pytest.raises(ValueError, match="not open"):
        register_for_event(session, _data(event), today=TODAY)


def test_similar_historical_rider_asks_for_a_match(session, chapter):
    historical = make_rider(session, first="Alice", last="Walkor", email=None)
    event = make_event(session, chapter)

    outcome = register_for_event(session, _data(event), today=TODAY)
    assert not outcome.success
    assert outcome.needs_rider_match
    assert [c.id for c in outcome.candidates] == [historical.id]
    assert outcome.pending.first_name == "Alice"
    assert session.execute(select(models.Registration)).first() is None


def test_claiming_a_historical_rider(session, chapter):
    historical = make_rider(session, first="Alice", last="Walkor", email=None)
    event = make_event(session, chapter)

    outcome = complete_registration_with_rider(session, _data(event), historical.id, today=TODAY)
    assert outcome.registration.rider_id == historical.id

    session.expire_all()
    rider = session.get(models.Rider, historical.id)
    assert rider.email == "alice@example.org"
    assert rider.last_name == "Walker"
    merge = session.execute(select(models.RiderMerge)).scalar_one()
    assert (merge.previous_last_name, merge.submitted_last_name) == ("Walkor", "Walker")
    assert merge.previous_email is None
    assert merge.merge_source == "registration"


def test_declining_all_candidates_creates_a_new_rider(session, chapter):
    make_rider(session, first="Alice", last="Walkor", email=None)
    event = make_event(session, chapter)
    outcome = complete_registration_with_rider(session, _data(event), None, today=TODAY)
    assert outcome.registration.rider.email == "alice@example.org"
    assert len(session.execute(select(models.Rider)).scalars().all()) == 2


def test_claim_refused_when_email_belongs_to_someone_else(session, chapter):
    historical = make_rider(session, first="Alice", last="Walkor", email=None)
    make_rider(session, first="Other", last="Person", email="alice@example.org")
    event = make_event(session, chapter)
    with pytest.raises(ValueError, match="already exists"):
        complete_registration_with_rider(session, _data(event), historical.id, today=TODAY)


def test_matched_permanent_duplicate_uses_permanent_wording(session, chapter):
    event = make_event(session, chapter, name="Uxbridge Loop", event_type="permanent")
    first = register_for_event(session, _data(event), today=TODAY)
    with pytest.raises(ValueError, match="already registered for this permanent ride"):
        complete_registration_with_rider(session, _data(event), first.registration.rider_id, today=TODAY)


def test_missing_membership_leaves_an_incomplete_registration(session, chapter):
    event = make_event(session, chapter)
    with pytest.raises(MembershipError) as info:
        register_for_event(session, _data(event), client=FakeCCN(None), today=TODAY)
    assert info.value.variant == "no-membership"

    reg = session.execute(select(models.Registration)).scalar_one()
    assert reg.status == STATUS_INCOMPLETE_MEMBERSHIP

    # retry after buying a membership reuses the same row
    member = FakeCCN(CCNMember(55, "Alice Walker", MEMBERSHIP_INDIVIDUAL))
    outcome = register_for_event(session, _data(event), client=member, today=TODAY)
    assert outcome.registration.id == reg.id
    assert outcome.registration.status == "registered"


def _permanent(route, **overrides) -> PermanentRegistrationData:
    values = dict(
        route_id=route.id,
        ride_date="2026-05-01",
        start_time="06:30",
        first_name="Alice",
        last_name="Walker",
        email="alice@example.org",
        direction="as_posted",
    )
    values.update(overrides)
    return PermanentRegistrationData(**values)


def test_permanent_creates_a_shared_event(session, chapter):
    route = make_route(session, chapter)
    outcome = register_for_permanent(session, _permanent(route), today=TODAY)

    event = session.execute(select(models.Event)).scalar_one()
    assert event.slug == permanent_event_slug(route.slug, date(2026, 5, 1))
    assert event.event_type == "permanent"
    assert event.chapter_id == chapter.id
    assert event.start_time == "06:30"
    assert outcome.registration.event_id == event.id

    register_for_permanent(session, _permanent(route, email="bob@example.org", first_name="Bob"), today=TODAY)
    assert len(session.execute(select(models.Event)).scalars().all()) == 1
    assert len(session.execute(select(models.Registration)).scalars().all()) == 2


def test_permanent_reversed_name(session, chapter):
    route = make_route(session, chapter)
    register_for_permanent(session, _permanent(route, direction="reversed"), today=TODAY)
    assert session.execute(select(models.Event.name)).scalar_one() == "Uxbridge Loop (Reversed)"


def test_permanent_lead_time(session, chapter):
    route = make_route(session, chapter)
    with pytest.raises(ValueError, match="2 weeks"):
        register_for_permanent(session, _permanent(route, ride_date="2026-04-10"), today=TODAY)
    # exactly two weeks is fine
    assert register_for_permanent(session, _permanent(route, ride_date="2026-04-15"), today=TODAY).success


def test_permanent_inactive_route(session, chapter):
    route = make_route(session, chapter, is_active=False)
    with pytest.raises(ValueError, match="not active"):
        register_for_permanent(session, _permanent(route), today=TODAY)


def test_permanent_duplicate(session, chapter):
    route = make_route(session, chapter)
    register_for_permanent(session, _permanent(route), today=TODAY)
    with pytest.raises(ValueError, match="already registered for this permanent"):
        register_for_permanent(session, _permanent(route), today=TODAY)


def test_permanent_start_time_format(session, chapter):
    route = make_route(session, chapter)
    with pytest.raises(ValueError, match="HH:MM"):
        register_for_permanent(session, _permanent(route, start_time="6am"), today=TODAY)
