from deplasari.models.models import User, WorkLog
from conftest import utc


class TestUsersCrud:
    def test_create_and_get(self, test_client, db):
        response = test_client.post("/api/users", json={
            "name": "  Ion Popescu ",
            "email": "ion@example.com",
            "username": "ion",
            "password": "password123",
        })

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["name"] == "Ion Popescu"
        assert body["status"] == "Liber"
        assert body["role"] == "user"
        assert "password_hash" not in body
        stored = db.query(User).filter(User.id == body["id"]).first()
        assert stored.password_hash and stored.password_hash != "password123"

        fetched = test_client.get(f"/api/users/{body['id']}")
        assert fetched.json()["username"] == "ion"

    def test_duplicates_rejected(self, test_client, make_user):
        make_user("Ion", username="ion")

        assert test_client.post("/api/users", json={"name": "Ion"}).status_code == 400
        assert test_client.post("/api/users", json={"name": "Other", "username": "ion"}).status_code == 400

    def test_short_password_rejected(self, test_client):
        response = test_client.post("/api/users", json={"name": "Ana", "password": "short"})
        assert response.status_code == 422

    def test_invalid_and_missing_id(self, test_client):
        assert test_client.get("/api/users/abc").status_code == 400
        assert test_client.get("/api/users/999").status_code == 404

    def test_update_and_delete(self, test_client, db, make_user):
        user = make_user("Ion", email="old@example.com")

        response = test_client.put(f"/api/users/{user.id}", json={"email": "new@example.com"})

        assert response.status_code == 200
        assert response.json()["email"] == "new@example.com"
        assert response.json()["name"] == "Ion"

        response = test_client.delete(f"/api/users/{user.id}")
        assert response.json()["success"] is True
        assert test_client.get(f"/api/users/{user.id}").status_code == 404

    def test_update_rejects_null_or_blank_name(self, test_client, make_user):
        user = make_user("Ion")

        assert test_client.put(f"/api/users/{user.id}", json={"name": None}).status_code == 422
        assert test_client.put(f"/api/users/{user.id}", json={"name": "  "}).status_code == 422

        response = test_client.put(f"/api/users/{user.id}", json={"name": " Ionel "})
        assert response.status_code == 200
        assert response.json()["name"] == "Ionel"

    def test_list_with_month_stats(self, test_client, make_user):
        make_user("Ion")
        make_user("Ana")

        response = test_client.get("/api/users")

        assert response.status_code == 200
        rows = response.json()
        assert sorted(r["name"] for r in rows) == ["Ana", "Ion"]
        assert all(r["assignment_count"] == 0 for r in rows)


class TestUserStatus:
    def test_available_users(self, test_client, make_user):
        make_user("Ion")
        make_user("Busy", status="In Deplasare")

        response = test_client.get("/api/users/available")

        assert [u["name"] for u in response.json()] == ["Ion"]

    def test_availability(self, test_client, make_user):
        busy = make_user("Busy", status="In Deplasare")

        response = test_client.get(f"/api/users/{busy.id}/availability")

        assert response.json() == {"name": "Busy", "available": False}

    def test_set_and_reset_status(self, test_client, make_user):
        user = make_user("Ion")

        response = test_client.put(
            f"/api/users/{user.id}/status",
            json={"status": "Asigned", "assignment_id": 12},
        )
        assert response.json()["status"] == "Asigned"
        assert response.json()["current_assignment"] == "12"

        response = test_client.post(f"/api/users/{user.id}/reset-status")
        assert response.json()["status"] == "Liber"
        assert response.json()["current_assignment"] is None

    def test_unknown_status_rejected(self, test_client, make_user):
        user = make_user("Ion")
        response = test_client.put(f"/api/users/{user.id}/status", json={"status": "Sleeping"})
        assert response.status_code == 422

    def test_status_of_missing_user(self, test_client):
        response = test_client.put("/api/users/999/status", json={"status": "Liber"})
        assert response.status_code == 404


class TestUserStats:
    def _finalized_log(self, db, make_user, make_assignment):
        user = make_user("Ion", email="ion@example.com")
        assignment = make_assignment(
            status="Finalizat", hours=6, km=80, city="Pitesti", county="Arges",
            completion_date=utc(2024, 5, 10, 14),
        )
        db.add(WorkLog(
            user_id=user.id,
            assignment_id=assignment.id,
            work_date=utc(2024, 5, 10, 14),
            hours=6,
            kilometers=80,
        ))
        db.commit()
        return user

    def test_monthly_stats(self, test_client, db, make_user, make_assignment):
        user = self._finalized_log(db, make_user, make_assignment)

        response = test_client.get(f"/api/users/{user.id}/stats", params={"month": "2024-05"})

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["total_hours"] == 6
        assert body["total_kilometers"] == 80
        assert body["work_logs"] == 1
        assert body["timeline"][0]["location"] == "Pitesti, Arges"

    def test_bad_month(self, test_client, make_user):
        user = make_user("Ion")
        response = test_client.get(f"/api/users/{user.id}/stats", params={"month": "May"})
        assert response.status_code == 400

    def test_stats_of_missing_user(self, test_client):
        response = test_client.get("/api/users/999/stats", params={"month": "2024-05"})
        assert response.status_code == 404

    def test_work_logs_and_totals(self, test_client, db, make_user, make_assignment):
        user = self._finalized_log(db, make_user, make_assignment)

        logs = test_client.get(f"/api/users/{user.id}/work-logs").json()
        totals = test_client.get(f"/api/users/{user.id}/totals").json()

        assert len(logs) == 1
        assert logs[0]["hours"] == 6
        assert totals["total_hours"] == 6
        assert totals["assignment_count"] == 1
        assert test_client.get("/api/users/999/totals").status_code == 404
