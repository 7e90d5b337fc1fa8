import pytest

from deplasari.models.models import WorkLog
from conftest import utc


RANGE = {"start": "2024-05-01", "end": "2024-05-31"}


@pytest.fixture
def month_of_work(db, make_user, make_assignment):
    ion = make_user("Ion")
    make_user("Ana")
    done = make_assignment(
        type="Interventie", team_lead="Ion", members=["Ana"], status="Finalizat",
        start_date=utc(2024, 5, 7, 8), completion_date=utc(2024, 5, 7, 13),
        hours=5, km=60, store_number="101", store_points=["101"],
    )
    make_assignment(type="Deschidere", team_lead="Ana", status="Finalizat",
                    start_date=utc(2024, 5, 8, 8), completion_date=utc(2024, 5, 8, 10),
                    hours=2, km=0)
    db.add(WorkLog(user_id=ion.id, assignment_id=done.id, work_date=utc(2024, 5, 7, 13), hours=5, kilometers=60))
    db.commit()


class TestStatsRoutes:
    def test_work_distribution(self, test_client, month_of_work):
        response = test_client.get("/api/work-distribution", params={"from": "2024-05-01", "to": "2024-05-31"})

        assert response.json() == {"deschidere": 2, "interventie": 5, "optimizare": 0}

    def test_work_distribution_requires_range(self, test_client):
        response = test_client.get("/api/work-distribution", params={"from": "2024-05-01"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Missing date range parameters"

    def test_user_hours(self, test_client, month_of_work):
        rows = test_client.get("/api/user-hours", params={"startDate": "2024-05-07", "endDate": "2024-05-07"}).json()

        assert rows[0]["name"] == "Ion"
        assert rows[0]["total_hours"] == 5

    def test_export_csv(self, test_client, month_of_work):
        response = test_client.get("/api/export/work-logs", params=RANGE)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert 'filename="work-logs-2024-05-01.csv"' in response.headers["content-disposition"]
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("ID,Type,Location")
        assert len(lines) == 3

    def test_top_workers(self, test_client, month_of_work):
        by_hours = test_client.get("/api/stats/top-workers", params=RANGE).json()
        by_km = test_client.get("/api/stats/top-workers", params=dict(RANGE, metric="km")).json()

        assert [(r["name"], r["total_hours"]) for r in by_hours] == [("Ana", 7), ("Ion", 5)]
        assert by_km[0]["total_kilometers"] == 60

    def test_top_workers_rejects_unknown_metric(self, test_client):
        assert test_client.get("/api/stats/top-workers", params={"metric": "days"}).status_code == 422

    def test_top_riders(self, test_client, month_of_work):
        rows = test_client.get("/api/stats/top-riders", params=RANGE).json()
        assert sorted(r["name"] for r in rows) == ["Ana", "Ion"]

    def test_work_types(self, test_client, month_of_work):
        rows = test_client.get("/api/stats/work-types", params=RANGE).json()
        assert [r["type"] for r in rows] == ["Interventie", "Deschidere"]

    def test_work_type_details(self, test_client, month_of_work):
        body = test_client.get("/api/stats/work-types/interventie", params=RANGE).json()

        assert body["type"] == "interventie"
        assert body["assignments"][0]["hours"] == 5
        assert body["daily_hours"] == [{"date": "2024-05-07", "hours": 5}]

    def test_totals(self, test_client, month_of_work):
        body = test_client.get("/api/stats/totals", params=RANGE).json()

        assert body["total_hours"] == 7
        assert body["total_kilometers"] == 60
        assert body["live_hours"] == 7
        assert body["live_hours_by_type"]["interventie"] == 5
