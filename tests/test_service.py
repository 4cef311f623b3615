"""End-to-end tests for the horoscope HTTP API."""

from __future__ import annotations

import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from fastapi.testclient import TestClient

from horoscope_store.database import DatabaseStorage
from horoscope_store.memory import MemoryStorage
from horoscope_store.models import NewDeliveryLog, NewHoroscope, NewUser
from horoscope_store.security import verify_password
from horoscope_store.service import create_app


CONTENT = {
    "overview": "A calm day for recovery.",
    "wellnessCategories": ["sleep"],
    "healthTip": "Stretch before bed.",
    "nutritionFocus": "Magnesium-rich foods",
    "elementAlignment": "Water",
}


class HoroscopeServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.storage = MemoryStorage()
        self.app = create_app(storage=self.storage)

    def test_healthcheck(self) -> None:
        with TestClient(self.app) as client:
            response = client.get("/healthz")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_signup_creates_user_then_welcomes_back(self) -> None:
        with TestClient(self.app) as client:
            created = client.post(
                "/api/signup",
                json={"email": "nova@example.com", "zodiac_sign": "Leo", "sms_opt_in": True, "phone": "+15550100"},
            )
            self.assertEqual(created.status_code, 201, created.text)
            payload = created.json()
            self.assertTrue(payload["success"])
            self.assertEqual(payload["user"]["zodiac_sign"], "leo")
            self.assertTrue(payload["user"]["sms_opt_in"])
            self.assertTrue(payload["user"]["newsletter_opt_in"])
            self.assertNotIn("password", payload["user"])

            again = client.post("/api/signup", json={"email": "nova@example.com", "zodiac_sign": "leo"})
            self.assertEqual(again.status_code, 200, again.text)
            self.assertIn("Welcome back", again.json()["message"])
            self.assertEqual(again.json()["user"]["id"], payload["user"]["id"])

        self.assertEqual(len(self.storage.list_users()), 1)

    def test_signup_hashes_password(self) -> None:
        with TestClient(self.app) as client:
            response = client.post(
                "/api/signup",
                json={"email": "pw@example.com", "zodiac_sign": "virgo", "password": "correct horse"},
            )
        self.assertEqual(response.status_code, 201, response.text)
        stored = self.storage.get_user_by_email("pw@example.com")
        assert stored is not None and stored.password is not None
        self.assertNotEqual(stored.password, "correct horse")
        self.assertTrue(verify_password("correct horse", stored.password))

    def test_signup_rejects_invalid_input(self) -> None:
        with TestClient(self.app) as client:
            bad_sign = client.post("/api/signup", json={"email": "x@example.com", "zodiac_sign": "ophiuchus"})
            bad_email = client.post("/api/signup", json={"email": "not-an-email", "zodiac_sign": "leo"})
        self.assertEqual(bad_sign.status_code, 422)
        self.assertEqual(bad_email.status_code, 422)
        self.assertEqual(self.storage.list_users(), [])

    def test_update_user_applies_partial_changes(self) -> None:
        user = self.storage.create_user(NewUser(email="edit@example.com", zodiac_sign="aries", first_name="Old"))

        with TestClient(self.app) as client:
            response = client.patch(f"/api/users/{user.id}", json={"sms_opt_in": True, "birthdate": "1991-04-02"})
            missing = client.patch("/api/users/999", json={"first_name": "Ghost"})
            fetched = client.get(f"/api/users/{user.id}")

        self.assertEqual(response.status_code, 200, response.text)
        body = response.json()
        self.assertTrue(body["sms_opt_in"])
        self.assertEqual(body["birthdate"], "1991-04-02")
        self.assertEqual(body["first_name"], "Old")
        self.assertEqual(missing.status_code, 404)
        self.assertEqual(fetched.json(), body)

    def test_update_user_accepts_capitalised_sign(self) -> None:
        with TestClient(self.app) as client:
            created = client.post("/api/signup", json={"email": "sign@example.com", "zodiac_sign": "Leo"})
            user_id = created.json()["user"]["id"]
            updated = client.patch(f"/api/users/{user_id}", json={"zodiac_sign": "Virgo"})

        self.assertEqual(created.status_code, 201, created.text)
        self.assertEqual(updated.status_code, 200, updated.text)
        self.assertEqual(updated.json()["zodiac_sign"], "virgo")
        self.assertEqual(self.storage.get_user(user_id).zodiac_sign, "virgo")

    def test_horoscope_lookup(self) -> None:
        today = datetime.now(timezone.utc).date().isoformat()
        self.storage.create_horoscope(NewHoroscope(zodiac_sign="pisces", date=today, content=CONTENT))

        with TestClient(self.app) as client:
            created = client.post(
                "/api/horoscopes",
                json={"zodiac_sign": "leo", "date": "2024-01-01", "content": CONTENT},
            )
            by_date = client.get("/api/horoscopes/leo", params={"date": "2024-01-01"})
            by_today = client.get("/api/horoscopes/PISCES")
            absent = client.get("/api/horoscopes/leo", params={"date": "2024-01-02"})
            invalid = client.get("/api/horoscopes/dragon")

        self.assertEqual(created.status_code, 201, created.text)
        self.assertEqual(by_date.status_code, 200, by_date.text)
        self.assertEqual(by_date.json()["content"], CONTENT)
        self.assertEqual(by_date.json()["id"], created.json()["id"])
        self.assertEqual(by_today.status_code, 200, by_today.text)
        self.assertEqual(by_today.json()["date"], today)
        self.assertEqual(absent.status_code, 404)
        self.assertEqual(invalid.status_code, 400)

    def test_delivery_logs_and_candidates(self) -> None:
        reader = self.storage.create_user(NewUser(email="reader@example.com", zodiac_sign="libra"))
        texter = self.storage.create_user(
            NewUser(
                email="texter@example.com",
                zodiac_sign="libra",
                sms_opt_in=True,
                phone="+15550123",
                newsletter_opt_in=False,
            )
        )
        horoscope = self.storage.create_horoscope(NewHoroscope(zodiac_sign="libra", date="2024-10-01", content=CONTENT))
        self.storage.create_delivery_log(
            NewDeliveryLog(user_id=texter.id, horoscope_id=horoscope.id, delivery_type="sms", status="success")
        )

        with TestClient(self.app) as client:
            logged = client.post(
                "/api/delivery-logs",
                json={
                    "user_id": reader.id,
                    "horoscope_id": horoscope.id,
                    "delivery_type": "email",
                    "status": "failed",
                },
            )
            unknown_user = client.post(
                "/api/delivery-logs",
                json={"user_id": 999, "horoscope_id": horoscope.id, "delivery_type": "email", "status": "success"},
            )
            history = client.get(f"/api/users/{reader.id}/delivery-logs")
            everyone = client.get("/api/delivery/candidates")
            sms_only = client.get("/api/delivery/candidates", params={"channel": "sms"})

        self.assertEqual(logged.status_code, 201, logged.text)
        self.assertEqual(logged.json()["status"], "failed")
        self.assertEqual(unknown_user.status_code, 404)
        self.assertEqual([entry["id"] for entry in history.json()], [logged.json()["id"]])
        self.assertEqual(len(everyone.json()), 2)
        self.assertEqual([user["email"] for user in sms_only.json()], ["texter@example.com"])

    def test_shutdown_closes_storage(self) -> None:
        with TestClient(self.app):
            pruner = self.storage.session_store._pruner
            self.assertIsNotNone(pruner)
            self.assertTrue(pruner.is_alive())
        self.assertIsNone(self.storage.session_store._pruner)


class DatabaseServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tempdir = tempfile.TemporaryDirectory()
        db_path = Path(self._tempdir.name) / "service.sqlite3"
        self.storage = DatabaseStorage.from_url(f"sqlite:///{db_path}")
        self.storage.initialize()

    def tearDown(self) -> None:
        self.storage.close()
        self._tempdir.cleanup()

    def test_email_conflict_on_update_returns_409(self) -> None:
        self.storage.create_user(NewUser(email="taken@example.com", zodiac_sign="leo"))
        other = self.storage.create_user(NewUser(email="other@example.com", zodiac_sign="leo"))

        with TestClient(create_app(storage=self.storage)) as client:
            response = client.patch(f"/api/users/{other.id}", json={"email": "taken@example.com"})

        self.assertEqual(response.status_code, 409, response.text)
        self.assertEqual(self.storage.get_user(other.id).email, "other@example.com")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
