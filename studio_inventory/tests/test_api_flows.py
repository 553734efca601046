import os
import sys
import unittest
from datetime import datetime, timedelta
from pathlib import Path

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


os.environ.setdefault("INVENTORY_DB_URL", "sqlite+pysqlite:///:memory:")

ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from studio_inventory import app as app_module
from studio_inventory.db.base import Base
from studio_inventory.models.inventory_models import ActivityLog, Category, User


def _iso(delta_days: int) -> str:
    return (datetime.now() + timedelta(days=delta_days)).isoformat()


class InventoryFlowTests(unittest.TestCase):
    def setUp(self):
        engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(engine)
        self.SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)

        with self.SessionLocal() as db:
            db.add_all([
                User(id=1, username="admin", email="admin@studio.local", full_name="Admin", role="admin"),
                User(id=2, username="alice", email="alice@studio.local", full_name="Alice", role="user", phone="555-0100"),
                User(id=3, username="bob", email="bob@studio.local", full_name="Bob", role="user"),
                Category(id=1, name="Camera", color="#4ECDC4"),
                Category(id=2, name="Lens", color="#45B7D1"),
            ])
            db.commit()

        def _override():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app_module.app.dependency_overrides[app_module.get_inventory_db] = _override
        self.client = TestClient(app_module.app)

    def tearDown(self):
        app_module.app.dependency_overrides.clear()

    def _create_camera(self, **extra):
        body = {"name": "Sony FX3", "categoryID": 1, "purchaseDate": "2024-03-01", "createdBy": 1}
        body.update(extra)
        res = self.client.post("/api/equipment", json=body)
        self.assertEqual(res.status_code, 201, res.text)
        return res.json()

    def _checkout(self, equipment_id, user_id=2, expected=None):
        return self.client.post(
            "/api/transactions/checkout",
            json={
                "equipmentID": equipment_id,
                "userID": user_id,
                "expectedReturnDate": expected or _iso(3),
                "purpose": "events",
            },
        )

    def test_healthchecks(self):
        self.assertEqual(self.client.get("/healthz").json(), {"status": "ok"})
        self.assertEqual(self.client.get("/api/healthz").status_code, 200)

    def test_create_assigns_barcode_and_qr_code(self):
        item = self._create_camera(serialNumber="FX3-0001")
        self.assertEqual(item["barcode"], "CA-0024-00001")
        self.assertEqual(item["qrCode"], f"EQ-{item['id']:05d}")
        self.assertEqual(item["status"], "available")
        self.assertEqual(item["categoryName"], "Camera")
        self.assertFalse(item["needsRelabeling"])

    def test_create_multiple_units(self):
        self._create_camera()
        res = self.client.post(
            "/api/equipment",
            json={
                "name": "Rode Wireless",
                "categoryID": 1,
                "purchaseDate": "2024-05-01",
                "quantity": 3,
                "serialNumbers": ["SN-0001", "SN-0002", "SN-0003"],
            },
        )
        self.assertEqual(res.status_code, 201, res.text)
        body = res.json()
        self.assertEqual(body["count"], 3)
        self.assertEqual(
            [item["barcode"] for item in body["items"]],
            ["CA-0124-00002-0001", "CA-0224-00003-0002", "CA-0324-00004-0003"],
        )

    def test_create_rejects_mismatched_serial_count(self):
        res = self.client.post(
            "/api/equipment",
            json={"name": "Stand", "quantity": 2, "serialNumbers": ["A1"]},
        )
        self.assertEqual(res.status_code, 400)

    def test_create_rejects_duplicate_serial(self):
        self._create_camera(serialNumber="DUP-1")
        res = self.client.post("/api/equipment", json={"name": "Other", "serialNumber": "DUP-1"})
        self.assertEqual(res.status_code, 400)

    def test_checkout_and_checkin_flow(self):
        item = self._create_camera()
        res = self._checkout(item["id"])
        self.assertEqual(res.status_code, 201, res.text)
        summary = res.json()
        self.assertEqual(summary["transactionCount"], 1)
        self.assertEqual(summary["userName"], "Alice")
        self.assertRegex(summary["batchID"], r"^\d{14}-[A-Z0-9]{6}$")

        detail = self.client.get(f"/api/equipment/{item['id']}").json()
        self.assertEqual(detail["status"], "checked_out")
        self.assertEqual(detail["displayStatus"], "checked_out")
        self.assertEqual(detail["checkedOutByName"], "Alice")

        again = self._checkout(item["id"], user_id=3)
        self.assertEqual(again.status_code, 400)

        by_other = self.client.post("/api/transactions/checkin", json={"equipmentID": item["id"], "checkedInBy": 3})
        self.assertEqual(by_other.status_code, 400)
        self.assertIn("Alice", by_other.json()["detail"])

        res = self.client.post(
            "/api/transactions/checkin",
            json={"equipmentID": [item["id"]], "checkedInBy": 2, "returnLocation": "vault", "conditionOnReturn": "worn"},
        )
        self.assertEqual(res.status_code, 200, res.text)

        detail = self.client.get(f"/api/equipment/{item['id']}").json()
        self.assertEqual(detail["status"], "available")
        self.assertEqual(detail["location"], "vault")
        self.assertEqual(detail["condition"], "worn")

        batch = self.client.get(f"/api/transactions/batch/{summary['batchID']}").json()
        self.assertEqual(batch["transactionCount"], 1)
        self.assertEqual(batch["activityLog"]["action"], "checkout")

    def test_admin_can_check_in_for_borrower(self):
        item = self._create_camera()
        self._checkout(item["id"])
        res = self.client.post("/api/transactions/checkin", json={"equipmentID": item["id"], "checkedInBy": 1})
        self.assertEqual(res.status_code, 200, res.text)

    def test_checkout_unknown_equipment_is_404(self):
        self.assertEqual(self._checkout(999).status_code, 404)

    def test_overdue_checkout_is_reported(self):
        item = self._create_camera()
        other = self._create_camera(name="Spare body")
        self._checkout(item["id"], expected=_iso(-2))
        self._checkout(other["id"], expected=_iso(2))

        detail = self.client.get(f"/api/equipment/{item['id']}").json()
        self.assertEqual(detail["status"], "checked_out")
        self.assertTrue(detail["isOverdue"])
        self.assertEqual(detail["displayStatus"], "overdue")

        overdue = self.client.get("/api/transactions/overdue").json()
        self.assertEqual([row["equipmentID"] for row in overdue], [item["id"]])
        self.assertEqual(overdue[0]["daysOverdue"], 2)
        self.assertEqual(overdue[0]["userPhone"], "555-0100")

        listed = self.client.get("/api/equipment", params={"status": "overdue"}).json()
        self.assertEqual([row["id"] for row in listed["data"]], [item["id"]])
        checked_out = self.client.get("/api/equipment", params={"status": "checked_out"}).json()
        self.assertEqual(checked_out["pagination"]["total"], 2)

    def test_maintenance_flow(self):
        item = self._create_camera()
        res = self.client.post("/api/transactions/maintenance/start", json={"equipmentID": item["id"], "userID": 1})
        self.assertEqual(res.status_code, 201, res.text)
        self.assertEqual(self.client.get(f"/api/equipment/{item['id']}").json()["status"], "maintenance")
        self.assertEqual(self._checkout(item["id"]).status_code, 400)

        listed = self.client.get("/api/equipment", params={"status": "maintenance"}).json()
        self.assertEqual(listed["pagination"]["total"], 1)

        res = self.client.post(
            "/api/transactions/maintenance/end",
            json={"equipmentID": item["id"], "userID": 1, "conditionOnReturn": "functional"},
        )
        self.assertEqual(res.status_code, 200, res.text)
        detail = self.client.get(f"/api/equipment/{item['id']}").json()
        self.assertEqual(detail["status"], "available")
        self.assertEqual(detail["condition"], "functional")

        again = self.client.post("/api/transactions/maintenance/end", json={"equipmentID": item["id"], "userID": 1})
        self.assertEqual(again.status_code, 400)

    def test_scan_by_qr_code_and_barcode(self):
        item = self._create_camera()
        by_qr = self.client.get(f"/api/scan/{item['qrCode'].lower()}")
        self.assertEqual(by_qr.status_code, 200)
        self.assertEqual(by_qr.json()["scannedAs"], "qr_code")
        self.assertEqual(by_qr.json()["id"], item["id"])

        by_barcode = self.client.get(f"/api/scan/{item['barcode']}")
        self.assertEqual(by_barcode.status_code, 200)
        self.assertEqual(by_barcode.json()["barcodeParts"]["sequential_number"], 1)
        self.assertEqual(by_barcode.json()["barcodeParts"]["year"], "24")

        self.assertEqual(self.client.get("/api/scan/EQ-09999").status_code, 404)
        self.assertEqual(self.client.get("/api/scan/NOT-A-CODE").status_code, 400)

    def test_qr_code_image(self):
        item = self._create_camera()
        body = self.client.get(f"/api/equipment/{item['id']}/qrcode").json()
        self.assertEqual(body["qrCode"], item["qrCode"])
        self.assertTrue(body["qrImage"].startswith("data:image/png;base64,"))

    def test_category_change_regenerates_barcode(self):
        item = self._create_camera()
        res = self.client.put(f"/api/equipment/{item['id']}", json={"categoryID": 2, "updatedBy": 1})
        self.assertEqual(res.status_code, 200, res.text)
        body = res.json()
        self.assertEqual(body["barcode"], "LN-0024-00001")
        self.assertTrue(body["needsRelabeling"])
        self.assertEqual(body["qrCode"], item["qrCode"])

        with self.SessionLocal() as db:
            entry = db.execute(
                select(ActivityLog).where(ActivityLog.action == "update", ActivityLog.entity_id == item["id"])
            ).scalars().first()
            self.assertIsNotNone(entry)
            self.assertIn("LN-0024-00001", entry.changes_json)

    def test_status_change_blocked_while_checked_out(self):
        item = self._create_camera()
        self._checkout(item["id"])
        res = self.client.put(f"/api/equipment/{item['id']}", json={"status": "needs_maintenance"})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(self.client.delete(f"/api/equipment/{item['id']}").status_code, 400)

    def test_soft_delete(self):
        item = self._create_camera()
        res = self.client.delete(f"/api/equipment/{item['id']}", params={"deletedBy": 1})
        self.assertEqual(res.status_code, 200)
        self.assertEqual(self.client.get(f"/api/equipment/{item['id']}").status_code, 404)
        self.assertEqual(self.client.get("/api/equipment").json()["pagination"]["total"], 0)

    def test_list_search_and_pagination(self):
        self._create_camera(name="Alpha body")
        self._create_camera(name="Beta body")
        self._create_camera(name="Gamma lens", categoryID=2)
        page = self.client.get("/api/equipment", params={"limit": 2, "page": 2}).json()
        self.assertEqual(page["pagination"], {"page": 2, "limit": 2, "total": 3, "pages": 2})
        self.assertEqual([row["name"] for row in page["data"]], ["Gamma lens"])

        found = self.client.get("/api/equipment", params={"search": "body"}).json()
        self.assertEqual(found["pagination"]["total"], 2)
        by_category = self.client.get("/api/equipment", params={"category": 2}).json()
        self.assertEqual([row["name"] for row in by_category["data"]], ["Gamma lens"])

    def test_categories(self):
        self._create_camera()
        categories = {row["name"]: row for row in self.client.get("/api/categories").json()}
        self.assertEqual(categories["Camera"]["equipmentCount"], 1)
        self.assertEqual(categories["Lens"]["equipmentCount"], 0)

        created = self.client.post("/api/categories", json={"name": "Drone", "color": "#FFB6C1"})
        self.assertEqual(created.status_code, 201)
        duplicate = self.client.post("/api/categories", json={"name": "Drone"})
        self.assertEqual(duplicate.status_code, 400)
        bad_color = self.client.post("/api/categories", json={"name": "Remote", "color": "blue"})
        self.assertEqual(bad_color.status_code, 422)

    def test_maintenance_records_and_damage_reports(self):
        item = self._create_camera()
        record = self.client.post(
            "/api/maintenance",
            json={"equipmentID": item["id"], "maintenanceType": "calibration", "description": "Sensor clean", "performedDate": "2024-06-01"},
        )
        self.assertEqual(record.status_code, 201, record.text)
        records = self.client.get("/api/maintenance", params={"equipmentID": item["id"]}).json()
        self.assertEqual(records[0]["maintenanceType"], "calibration")

        report = self.client.post(
            "/api/damage-reports",
            json={"equipmentID": item["id"], "reportedBy": 2, "damageDescription": "Cracked LCD", "damageSeverity": "moderate", "imagePaths": ["a.jpg"]},
        )
        self.assertEqual(report.status_code, 201, report.text)
        self.assertEqual(report.json()["imagePaths"], ["a.jpg"])
        self.assertEqual(report.json()["repairStatus"], "reported")

        unknown = self.client.post(
            "/api/damage-reports",
            json={"equipmentID": item["id"], "reportedBy": 42, "damageDescription": "Dent"},
        )
        self.assertEqual(unknown.status_code, 400)

    def test_transaction_history_and_activity(self):
        item = self._create_camera()
        self._checkout(item["id"])
        history = self.client.get("/api/transactions", params={"equipmentID": item["id"]}).json()
        self.assertEqual(history["pagination"]["total"], 1)
        self.assertEqual(history["data"][0]["transactionType"], "checkout")
        self.assertEqual(history["data"][0]["userName"], "Alice")

        recent = self.client.get("/api/activity/recent").json()
        self.assertEqual([row["action"] for row in recent][:2], ["checkout", "create"])
        creates = self.client.get("/api/activity", params={"action": "create", "entityType": "equipment"}).json()
        self.assertEqual(creates[0]["entityID"], item["id"])
        self.assertEqual(creates[0]["userName"], "Admin")

    def test_scan_multi_unit_label_with_alphanumeric_serial(self):
        res = self.client.post(
            "/api/equipment",
            json={"name": "Wireless kit", "categoryID": 1, "purchaseDate": "2024-05-01", "quantity": 2, "serialNumbers": ["SN12ABCD", "SN34WXYZ"]},
        )
        self.assertEqual(res.status_code, 201, res.text)
        barcodes = [item["barcode"] for item in res.json()["items"]]
        self.assertEqual(barcodes, ["CA-0124-00001-0012", "CA-0224-00002-0034"])
        scanned = self.client.get(f"/api/scan/{barcodes[0]}")
        self.assertEqual(scanned.status_code, 200)
        self.assertEqual(scanned.json()["barcodeParts"]["serial_suffix"], "0012")

    def test_users_list_with_checkout_counts(self):
        first = self._create_camera()
        second = self._create_camera(name="Spare body")
        self._checkout([first["id"], second["id"]])
        self.client.post("/api/transactions/checkin", json={"equipmentID": second["id"], "checkedInBy": 2})

        users = {row["username"]: row for row in self.client.get("/api/users").json()}
        self.assertEqual(list(users), ["admin", "alice", "bob"])
        self.assertEqual((users["alice"]["totalCheckouts"], users["alice"]["activeCheckouts"]), (2, 1))
        self.assertEqual((users["bob"]["totalCheckouts"], users["bob"]["activeCheckouts"]), (0, 0))
        self.assertEqual(self.client.get("/api/users/2").json()["fullName"], "Alice")
        self.assertEqual(self.client.get("/api/users/99").status_code, 404)

    def test_user_create_requires_admin(self):
        body = {"username": "dana", "email": "dana@studio-inventory.io", "fullName": "Dana", "department": "Video"}
        self.assertEqual(self.client.post("/api/users", json=body).status_code, 401)
        self.assertEqual(self.client.post("/api/users", json=body, headers={"X-User-ID": "3"}).status_code, 403)
        self.assertEqual(self.client.post("/api/users", json=body, headers={"X-User-ID": "42"}).status_code, 401)

        created = self.client.post("/api/users", json=body, headers={"X-User-ID": "1"})
        self.assertEqual(created.status_code, 201, created.text)
        self.assertEqual(created.json()["role"], "user")
        self.assertTrue(created.json()["isActive"])

        duplicate = self.client.post("/api/users", json=body, headers={"X-User-ID": "1"})
        self.assertEqual(duplicate.status_code, 400)
        bad_email = self.client.post(
            "/api/users",
            json={"username": "erin", "email": "not-an-email", "fullName": "Erin"},
            headers={"X-User-ID": "1"},
        )
        self.assertEqual(bad_email.status_code, 422)

        # A newly created user can borrow equipment.
        item = self._create_camera()
        self.assertEqual(self._checkout(item["id"], user_id=created.json()["id"]).status_code, 201)

    def test_user_update(self):
        admin = {"X-User-ID": "1"}
        res = self.client.put("/api/users/3", json={"fullName": "Robert", "role": "manager"}, headers=admin)
        self.assertEqual(res.status_code, 200, res.text)
        self.assertEqual((res.json()["fullName"], res.json()["role"]), ("Robert", "manager"))
        self.assertEqual(self.client.put("/api/users/3", json={}, headers=admin).status_code, 400)
        self.assertEqual(self.client.put("/api/users/3", json={"username": None}, headers=admin).status_code, 400)
        self.assertEqual(self.client.put("/api/users/3", json={"username": "alice"}, headers=admin).status_code, 400)
        self.assertEqual(self.client.put("/api/users/99", json={"fullName": "X"}, headers=admin).status_code, 404)

    def test_user_soft_delete(self):
        admin = {"X-User-ID": "1"}
        item = self._create_camera()
        self._checkout(item["id"])
        blocked = self.client.delete("/api/users/2", headers=admin)
        self.assertEqual(blocked.status_code, 400)
        self.assertIn("1 equipment", blocked.json()["detail"])

        self.assertEqual(self.client.delete("/api/users/3", headers=admin).status_code, 200)
        active = [row["username"] for row in self.client.get("/api/users").json()]
        self.assertNotIn("bob", active)
        everyone = [row["username"] for row in self.client.get("/api/users", params={"activeOnly": "false"}).json()]
        self.assertIn("bob", everyone)
        spare = self._create_camera(name="Spare body")
        self.assertEqual(self._checkout(spare["id"], user_id=3).status_code, 400)


if __name__ == "__main__":
    unittest.main()
