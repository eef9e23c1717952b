from datetime import date

from conftest import make_event, make_result, make_rider, make_route
from randonneurs import models
from randonneurs.records import (
    AWARD_DEVIL_WEEK,
    AWARD_SUPER_RANDONNEUR,
    club_achievements,
    current_season_distance,
    granite_anvil_records,
    lifetime_records,
    pbp_records,
    route_records,
    season_records,
    sr_seasons_from_results,
    streaks,
    super_randonneur_seasons,
)


def _series(session, chapter, rider, season, distances=(200, 300, 400, 600)):
    for i, km in enumerate(distances):
        e = make_event(session, chapter, name=f"SR {season} {km}", distance_km=km,
                       event_date=date(season, 4 + i, 1), status="submitted")
        make_result(session, e, rider)


def _award(session, result, slug):
    award = session.query(models.Award).filter_by(slug=slug).one_or_none()
    if award is None:
        award = models.Award(slug=slug, title=slug)
        session.add(award)
        session.flush()
    session.add(models.ResultAward(result_id=result.id, award_id=award.id))
    session.commit()


def test_streaks():
    assert streaks([2019, 2020, 2021, 2023, 2024]) == [(3, 2021), (2, 2024)]
    assert streaks([]) == []
    assert streaks([2020, 2020]) == [(1, 2020)]


def test_sr_seasons_need_every_distance():
    rows = [(2024, 200), (2024, 300), (2024, 400), (2024, 600), (2025, 200), (2025, 300), (2025, 600), (2025, 150)]
    assert sr_seasons_from_results(rows) == {2024}
    # over-distance rides count toward the next nominal distance, leaving 200 empty
    assert sr_seasons_from_results([(2026, 210), (2026, 310), (2026, 405), (2026, 600)]) == set()
    assert sr_seasons_from_results([(2026, 200), (2026, 300), (2026, 400), (2026, 600), (2026, 1000)]) == {2026}


def test_super_randonneur_from_results_and_awards(session, chapter):
    rider = make_rider(session)
    _series(session, chapter, rider, 2024)
    _series(session, chapter, rider, 2025, distances=(200, 300, 400))
    old = make_event(session, chapter, name="Legacy", event_date=date(2010, 6, 1), status="submitted")
    _award(session, make_result(session, old, rider), AWARD_SUPER_RANDONNEUR)

    assert super_randonneur_seasons(session, rider.id) == [2010, 2024]


def test_permanents_and_populaires_do_not_count_for_sr(session, chapter):
    rider = make_rider(session)
    for i, km in enumerate((200, 300, 400, 600)):
        e = make_event(session, chapter, name=f"Perm {km}", distance_km=km, event_type="permanent",
                       event_date=date(2024, 4 + i, 1), status="submitted")
        make_result(session, e, rider)
    assert super_randonneur_seasons(session, rider.id) == []


def test_lifetime_records(session, chapter):
    ann = make_rider(session, first="Ann", last="Aa", email="ann@example.org")
    bo = make_rider(session, first="Bo", last="Bb", email="bo@example.org")
    _series(session, chapter, ann, 2025)
    _series(session, chapter, ann, 2026)
    e = make_event(session, chapter, name="Bo ride", event_date=date(2024, 5, 1), status="submitted")
    make_result(session, e, bo)
    dnf = make_event(session, chapter, name="Bo dnf", event_date=date(2026, 5, 9), status="submitted")
    make_result(session, dnf, bo, status="dnf")
    perm = make_event(session, chapter, name="Perm", distance_km=200, event_type="permanent",
                      event_date=date(2026, 9, 1), status="submitted")
    _award(session, make_result(session, perm, bo), AWARD_DEVIL_WEEK)

    rec = lifetime_records(session, current_season=2026)
    assert [(r.rider_name, r.value) for r in rec.most_brevets] == [("Ann Aa", 8), ("Bo Bb", 2)]
    assert rec.highest_distance[0].value == 3000
    assert [(r.rider_name, r.value) for r in rec.most_active_seasons] == [("Ann Aa", 2), ("Bo Bb", 2)]
    assert [(r.rider_name, r.value) for r in rec.most_permanents] == [("Bo Bb", 1)]
    assert [(r.rider_name, r.value) for r in rec.most_devil_weeks] == [("Bo Bb", 1)]
    assert [(r.rider_name, r.value) for r in rec.most_super_randonneurs] == [("Ann Aa", 2)]
    assert [(r.rider_name, r.streak_length, r.streak_end_season) for r in rec.sr_streaks] == [("Ann Aa", 2, 2026)]
    # Bo's 2024 season is not adjacent to 2026
    assert [(r.rider_name, r.streak_length) for r in rec.longest_streaks] == [("Ann Aa", 2), ("Bo Bb", 1)]


def test_season_and_club_records(session, chapter):
    ann = make_rider(session, first="Ann", last="Aa", email="ann@example.org")
    bo = make_rider(session, first="Bo", last="Bb", email="bo@example.org")
    _series(session, chapter, ann, 2025)
    e = make_event(session, chapter, name="Bo ride", event_date=date(2025, 9, 1), status="submitted")
    make_result(session, e, bo)
    make_event(session, chapter, name="Unsubmitted", event_date=date(2025, 10, 1), status="completed")

    seasons = season_records(session)
    top = seasons.most_brevets_in_season[0]
    assert (top.rider_name, top.season, top.value) == ("Ann Aa", 2025, 4)
    assert seasons.highest_distance_in_season[0].value == 1500

    club = club_achievements(session)
    assert [(r.season, r.value) for r in club.most_unique_riders] == [(2025, 2)]
    assert [(r.season, r.value) for r in club.most_brevets_organized] == [(2025, 5)]
    assert [(r.season, r.value) for r in club.highest_cumulative_distance] == [(2025, 1700)]

    assert [(r.rider_name, r.value) for r in current_season_distance(session, 2025)] == [("Ann Aa", 1500), ("Bo Bb", 200)]


def test_route_records(session, chapter):
    busy = make_route(session, chapter, name="Busy")
    quiet = make_route(session, chapter, name="Quiet")
    riders = [make_rider(session, first=n, email=f"{n}@example.org") for n in ("a", "b", "c")]
    for i in range(3):
        e = make_event(session, chapter, name=f"Busy {i}", route=busy, event_date=date(2024 + i, 5, 1),
                       status="submitted")
        make_result(session, e, riders[0])
    q = make_event(session, chapter, name="Quiet", route=quiet, event_date=date(2025, 6, 1), status="submitted")
    for r in riders:
        make_result(session, q, r)

    rec = route_records(session)
    assert [(r.route_name, r.value) for r in rec.by_frequency] == [("Busy", 3), ("Quiet", 1)]
    assert [(r.route_name, r.value) for r in rec.by_participants] == [("Quiet", 3), ("Busy", 1)]
    assert rec.by_frequency[0].chapter_name == "Toronto"


def test_timed_records_sort_numerically(session):
    other = session.query(models.Chapter).filter_by(slug="other").one()
    riders = [make_rider(session, first=n, email=f"{n}@example.org") for n in ("a", "b", "c")]
    pbp = make_event(session, other, name="Paris-Brest-Paris", distance_km=1200, event_date=date(2023, 8, 20),
                     status="submitted")
    make_result(session, pbp, riders[0], finish_time="80:10")
    make_result(session, pbp, riders[1], finish_time="79:05")
    make_result(session, pbp, riders[2], status="dnf")
    anvil = make_event(session, None, name="Granite Anvil", distance_km=1000, event_date=date(2024, 7, 1),
                       status="submitted", collection="granite-anvil")
    make_result(session, anvil, riders[0], finish_time="9:30")

    rec = pbp_records(session)
    assert [r.time for r in rec.fastest_times] == ["79:05", "80:10"]
    assert {r.value for r in rec.most_completions} == {1}
    assert [r.time for r in granite_anvil_records(session).fastest_times] == ["9:30"]
