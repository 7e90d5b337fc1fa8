import pytest

from deplasari.models.models import (
    Assignment,
    User,
    WorkLog,
    STATUS_COMPLETED,
    STATUS_IN_PROGRESS,
    USER_FREE,
)
from deplasari.schemas.assignments import AssignmentUpdate
from deplasari.services import assignment_service
from deplasari.services.assignment_service import (
    delete_assignment,
    finalize_assignment,
    list_assignments,
    update_assignment,
)
from deplasari.services.time_rules import ensure_utc
from conftest import utc


PLATE = "B 1 ABC"


@pytest.fixture
def trip(add_presence):
    """Car leaves the depot at 09:00 and is back at 15:00 on 10 May."""
    def _trip(plate=PLATE):
        add_presence(plate, utc(2024, 5, 10, 9), near=False)
        add_presence(plate, utc(2024, 5, 10, 15), near=True)

    return _trip


@pytest.fixture
def failing_team_update(monkeypatch):
    """Apply the status change, then fail before the commit."""
    real = assignment_service.set_team_status

    def _fail(db, names, status, current_assignment=None):
        real(db, names, status, current_assignment)
        raise RuntimeError("status update failed")

    monkeypatch.setattr(assignment_service, "set_team_status", _fail)


class TestGpsRefresh:
    def test_list_persists_gps_times(self, db, make_assignment, trip):
        trip()
        assignment = make_assignment(car_plate=PLATE, status=STATUS_IN_PROGRESS)

        list_assignments(db)

        db.expire_all()
        stored = db.get(Assignment, assignment.id)
        assert ensure_utc(stored.gps_start_date) == utc(2024, 5, 10, 9)
        assert ensure_utc(stored.return_time) == utc(2024, 5, 10, 15)

    def test_lookup_cached_per_plate_and_anchor(self, db, make_assignment, trip, monkeypatch):
        trip()
        first = make_assignment(car_plate=PLATE)
        second = make_assignment(car_plate=PLATE)
        real = assignment_service.get_vehicle_timestamps
        calls = []

        def _counting(db, plate, anchor):
            calls.append((plate, anchor))
            return real(db, plate, anchor)

        monkeypatch.setattr(assignment_service, "get_vehicle_timestamps", _counting)

        list_assignments(db)

        assert len(calls) == 1
        db.expire_all()
        for assignment_id in (first.id, second.id):
            assert ensure_utc(db.get(Assignment, assignment_id).gps_start_date) == utc(2024, 5, 10, 9)

    def test_failing_assignment_does_not_stop_the_others(self, db, make_assignment, trip, monkeypatch):
        trip()
        broken = make_assignment(car_plate="BROKEN")
        healthy = make_assignment(car_plate=PLATE)
        real = assignment_service.get_vehicle_timestamps

        def _lookup(db, plate, anchor):
            if plate == "BROKEN":
                raise RuntimeError("bad presence data")
            return real(db, plate, anchor)

        monkeypatch.setattr(assignment_service, "get_vehicle_timestamps", _lookup)

        result = list_assignments(db)

        assert {a.id for a in result} == {broken.id, healthy.id}
        db.expire_all()
        assert db.get(Assignment, broken.id).gps_start_date is None
        assert ensure_utc(db.get(Assignment, healthy.id).return_time) == utc(2024, 5, 10, 15)

    def test_assignments_without_plate_untouched(self, db, make_assignment, trip):
        trip()
        assignment = make_assignment()

        list_assignments(db)

        db.expire_all()
        assert db.get(Assignment, assignment.id).gps_start_date is None

    def test_completed_tab_skips_gps(self, test_client, db, make_assignment, trip):
        trip()
        assignment = make_assignment(car_plate=PLATE, status=STATUS_COMPLETED)

        response = test_client.get("/api/assignments", params={"tab": "completed"})

        assert [a["id"] for a in response.json()] == [assignment.id]
        db.expire_all()
        stored = db.get(Assignment, assignment.id)
        assert stored.gps_start_date is None
        assert stored.return_time is None


class TestFinalizeWithGps:
    def test_gps_times_drive_dates_and_hours(self, db, make_user, make_assignment, trip):
        make_user("Ion", status=STATUS_IN_PROGRESS)
        trip()
        assignment = make_assignment(car_plate=PLATE, status=STATUS_IN_PROGRESS, km=80)

        result = finalize_assignment(db, assignment.id, completion_date=utc(2024, 5, 11, 20))

        assert result["hours"] == 6
        assert ensure_utc(result["real_start_date"]) == utc(2024, 5, 10, 9)
        assert ensure_utc(result["real_completion_date"]) == utc(2024, 5, 10, 15)
        db.expire_all()
        stored = db.get(Assignment, assignment.id)
        assert stored.status == STATUS_COMPLETED
        assert ensure_utc(stored.start_date) == utc(2024, 5, 10, 9)
        assert ensure_utc(stored.completion_date) == utc(2024, 5, 10, 15)
        log = db.query(WorkLog).filter(WorkLog.assignment_id == assignment.id).one()
        assert log.hours == 6
        assert log.kilometers == 80

    def test_existing_work_logs_only_close_the_assignment(self, db, make_user, make_assignment, trip):
        trip()
        assignment = make_assignment(car_plate=PLATE, status=STATUS_IN_PROGRESS)
        ion = make_user("Ion", status=STATUS_IN_PROGRESS, current_assignment=str(assignment.id))
        db.add(WorkLog(user_id=ion.id, assignment_id=assignment.id, work_date=utc(2024, 5, 10, 12), hours=2))
        db.commit()

        result = finalize_assignment(db, assignment.id)

        assert result["message"] == "Assignment already had work logs, status updated with real timestamps"
        db.expire_all()
        assert db.query(WorkLog).filter(WorkLog.assignment_id == assignment.id).count() == 1
        stored = db.get(Assignment, assignment.id)
        assert stored.status == STATUS_COMPLETED
        assert ensure_utc(stored.start_date) == utc(2024, 5, 10, 9)
        assert ensure_utc(stored.completion_date) == utc(2024, 5, 10, 15)
        ion = db.get(User, ion.id)
        assert ion.status == USER_FREE
        assert ion.current_assignment is None


class TestRollback:
    def test_finalize_failure_leaves_nothing_behind(self, db, make_user, make_assignment, failing_team_update):
        make_user("Ion", status=STATUS_IN_PROGRESS, current_assignment="1")
        assignment = make_assignment(status=STATUS_IN_PROGRESS)

        with pytest.raises(RuntimeError):
            finalize_assignment(db, assignment.id, completion_date=utc(2024, 5, 10, 12))

        db.expire_all()
        assert db.get(Assignment, assignment.id).status == STATUS_IN_PROGRESS
        assert db.query(WorkLog).count() == 0
        assert db.query(User).filter(User.name == "Ion").one().status == STATUS_IN_PROGRESS

    def test_delete_failure_keeps_assignment_and_logs(self, db, make_user, make_assignment, configured, monkeypatch):
        configured(pass_delete="secret")
        assignment = make_assignment(status=STATUS_IN_PROGRESS)
        ion = make_user("Ion", status=STATUS_IN_PROGRESS, current_assignment=str(assignment.id))
        db.add(WorkLog(user_id=ion.id, assignment_id=assignment.id, work_date=utc(2024, 5, 10, 12), hours=3))
        db.commit()

        def _commit():
            raise RuntimeError("commit failed")

        monkeypatch.setattr(db, "commit", _commit)

        with pytest.raises(RuntimeError):
            delete_assignment(db, assignment.id, "secret")

        db.expire_all()
        assert db.get(Assignment, assignment.id) is not None
        assert db.query(WorkLog).filter(WorkLog.assignment_id == assignment.id).count() == 1
        assert db.get(User, ion.id).status == STATUS_IN_PROGRESS

    def test_update_failure_is_rolled_back(self, db, make_user, make_assignment, failing_team_update):
        make_user("Ion", status=STATUS_IN_PROGRESS)
        assignment = make_assignment(status=STATUS_IN_PROGRESS, location="Ploiesti")

        with pytest.raises(RuntimeError):
            update_assignment(db, assignment.id, AssignmentUpdate(status="Finalizat", location="Brasov"))

        db.expire_all()
        stored = db.get(Assignment, assignment.id)
        assert stored.status == STATUS_IN_PROGRESS
        assert stored.location == "Ploiesti"
        assert db.query(User).filter(User.name == "Ion").one().status == STATUS_IN_PROGRESS
