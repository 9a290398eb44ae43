import importlib
import io
import struct
import sys
import tempfile
import unittest
import zlib
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient
from PIL import Image


def _response(json_data, status=200):
    resp = MagicMock()
    resp.status_code = status
    resp.text = "" if status < 300 else "upstream error"
    resp.json.return_value = json_data
    return resp


def _png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), (200, 80, 80)).save(buf, format="PNG")
    return buf.getvalue()


def _chunk(kind, payload):
    body = kind + payload
    return struct.pack(">I", len(payload)) + body + struct.pack(">I", zlib.crc32(body) & 0xFFFFFFFF)


def _oversized_png_bytes(side=20000):
    """Tiny PNG whose header declares a huge 1-bit image."""
    header = struct.pack(">IIBBBBB", side, side, 1, 0, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _chunk(b"IHDR", header)
        + _chunk(b"IDAT", zlib.compress(b""))
        + _chunk(b"IEND", b"")
    )


class ApiIntegrationTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.db_path = f"{self.tmp.name}/test.db"

        import config
        import db

        self._config = config
        self._db = db
        self._old_config_path = config.STORAGE_PATH
        self._old_db_path = db.STORAGE_PATH
        self._old_supabase = (config.SUPABASE_URL, config.SUPABASE_KEY)

        config.STORAGE_PATH = self.db_path
        db.STORAGE_PATH = self.db_path
        config.SUPABASE_URL, config.SUPABASE_KEY = "", ""

        sys.modules.pop("main", None)
        main = importlib.import_module("main")
        self.app = main.app
        self.client = TestClient(main.app)

        # First safe request hands out the CSRF cookie.
        self.assertEqual(self.client.get("/health").status_code, 200)
        self.csrf = self.client.cookies.get("csrf_token")
        self.assertTrue(self.csrf)

        patcher = patch("requests.post")
        self.post = patcher.start()
        self.addCleanup(patcher.stop)

    def tearDown(self):
        self.client.close()
        self._config.STORAGE_PATH = self._old_config_path
        self._db.STORAGE_PATH = self._old_db_path
        self._config.SUPABASE_URL, self._config.SUPABASE_KEY = self._old_supabase
        sys.modules.pop("main", None)
        self.tmp.cleanup()

    def _headers(self):
        return {"origin": "http://testserver", "x-csrf-token": self.csrf}

    def _post(self, url, **kwargs):
        return self.client.post(url, headers=self._headers(), **kwargs)

    def test_post_requires_csrf_header(self):
        resp = self.client.post(
            "/api/medications",
            headers={"origin": "http://testserver"},
            data={"name": "Metformin", "dosage": "500mg"},
        )
        self.assertEqual(resp.status_code, 403)
        self.assertEqual(resp.json(), {"error": "forbidden"})

        cross_site = self.client.post(
            "/api/medications",
            headers={"origin": "http://evil.example", "x-csrf-token": self.csrf},
            data={"name": "Metformin", "dosage": "500mg"},
        )
        self.assertEqual(cross_site.status_code, 403)
        self.assertEqual(self.client.get("/api/medications").json(), {"medications": []})

    def test_medication_lifecycle(self):
        created = self._post(
            "/api/medications",
            data={"name": "Metformin", "dosage": "500mg", "frequency": "Twice daily", "time": "08:30"},
        )
        self.assertEqual(created.status_code, 200)
        med = created.json()["medication"]
        self.assertEqual(med["name"], "Metformin")
        self.assertTrue(med["createdAt"].endswith("Z"))

        listed = self.client.get("/api/medications").json()["medications"]
        self.assertEqual([m["id"] for m in listed], [med["id"]])

        bad = self._post("/api/medications", data={"name": "", "dosage": "1"})
        self.assertEqual(bad.status_code, 400)

        deleted = self._post(f"/api/medications/{med['id']}/delete")
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.client.get("/api/medications").json()["medications"], [])

        freqs = self.client.get("/api/medications/frequencies").json()["frequencies"]
        self.assertIn("As needed", freqs)

    def test_emergency_contact_lifecycle(self):
        created = self._post(
            "/api/emergency-contacts",
            data={"name": "Ravi", "relationship": "Brother", "phone": "+91 98765 43210"},
        )
        self.assertEqual(created.status_code, 200)
        contact_id = created.json()["contact"]["id"]
        self._post("/api/emergency-contacts/unknown/delete")
        self.assertEqual(len(self.client.get("/api/emergency-contacts").json()["contacts"]), 1)
        self._post(f"/api/emergency-contacts/{contact_id}/delete")
        self.assertEqual(self.client.get("/api/emergency-contacts").json()["contacts"], [])

    def test_diabetes_prediction_feeds_history_and_trends(self):
        self.post.return_value = _response(
            {"success": True, "prediction": 0, "prediction_text": "Not Diabetic"}
        )
        fields = {
            "pregnancies": "1", "glucose": "110", "bloodpressure": "72", "skinthickness": "20",
            "insulin": "80", "bmi": "24.5", "dpf": "0.3", "age": "29",
        }
        resp = self._post("/api/predict/diabetes", data=fields)
        self.assertEqual(resp.status_code, 200)
        record = resp.json()["prediction"]
        self.assertEqual(record["result"], "Not Diabetic")

        preds = self.client.get("/api/predictions").json()["predictions"]
        self.assertEqual(preds, [record])

        trends = self.client.get("/api/trends").json()
        self.assertEqual(trends["total"], 1)
        self.assertEqual(trends["counts"], {"Diabetes": 1})
        self.assertEqual(trends["diabetes"][0]["glucose"], 110.0)
        self.assertEqual(trends["diabetes"][0]["bmi"], 24.5)
        self.assertEqual(trends["recent"], [record])

        reports = self.client.get("/api/reports").json()["reports"]
        self.assertTrue(reports[0]["flagged"])

    def test_invalid_diabetes_input_is_rejected_without_call(self):
        resp = self._post("/api/predict/diabetes", data={"pregnancies": "1"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "glucose is required"})
        self.post.assert_not_called()

    def test_upstream_failure_is_bad_gateway(self):
        self.post.return_value = _response({}, status=503)
        resp = self._post("/api/predict/ckd", json={"age": "48"})
        self.assertEqual(resp.status_code, 502)
        self.assertEqual(resp.json(), {"error": "HTTP 503: upstream error"})
        self.assertEqual(self.client.get("/api/predictions").json()["predictions"], [])

    def test_unsaved_prediction_reports_not_ok(self):
        self.post.return_value = _response({"prediction": "ckd"})
        with patch("gateway.save_prediction", return_value=None):
            resp = self._post("/api/predict/ckd", json={"age": "48"})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertFalse(body["ok"])
        self.assertFalse(body["prediction"]["saved"])
        self.assertEqual(body["prediction"]["result"], "No CKD Detected")

    def test_hypertension_json_body(self):
        self.post.return_value = _response({"hypertension": 0, "message": "Low risk"})
        resp = self._post("/api/predict/hypertension", json={
            "age": "45", "bmi": "27.5", "HbA1c_level": "5.8", "blood_glucose_level": "140",
        })
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["prediction"]["result"], "No Hypertension")

    def test_skin_image_upload(self):
        self.post.return_value = _response({
            "success": True, "predictions": [{"class": "Eczema", "confidence": 0.9}],
        })
        resp = self._post(
            "/api/predict/skin-disease/image",
            files={"file": ("rash.png", _png_bytes(), "image/png")},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["prediction"]["result"], "Eczema")

    def test_skin_image_without_predictions(self):
        self.post.return_value = _response({"success": True})
        resp = self._post(
            "/api/predict/skin-disease/image",
            files={"file": ("rash.png", _png_bytes(), "image/png")},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertIsNone(resp.json()["prediction"])
        self.assertEqual(self.client.get("/api/predictions").json()["predictions"], [])

    def test_non_image_upload_is_rejected(self):
        resp = self._post(
            "/api/predict/pneumonia/image",
            files={"file": ("notes.txt", b"hello world", "text/plain")},
        )
        self.assertEqual(resp.status_code, 400)
        self.post.assert_not_called()

    def test_decompression_bomb_is_rejected(self):
        resp = self._post(
            "/api/predict/skin-disease/image",
            files={"file": ("huge.png", _oversized_png_bytes(), "image/png")},
        )
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json(), {"error": "Could not read image"})
        self.post.assert_not_called()

    def test_unknown_image_condition(self):
        resp = self._post(
            "/api/predict/fracture/image",
            files={"file": ("x.png", _png_bytes(), "image/png")},
        )
        self.assertEqual(resp.status_code, 404)

    def test_pdf_export(self):
        resp = self.client.get("/api/reports/export")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers["content-type"], "application/pdf")
        self.assertIn("CareScan_Report_", resp.headers["content-disposition"])
        self.assertTrue(resp.content.startswith(b"%PDF"))

    def test_identity_without_provider(self):
        me = self.client.get("/api/me").json()
        self.assertEqual(me, {"name": "User", "email": "", "signed_in": False})

        login = self._post("/api/login", data={"email": "a@example.com", "password": "pw"})
        self.assertEqual(login.status_code, 401)
        missing = self._post("/api/login", data={"email": "", "password": ""})
        self.assertEqual(missing.status_code, 400)

        logout = self._post("/api/logout")
        self.assertEqual(logout.json(), {"ok": True})
        self.assertFalse(self.client.get("/api/me").json()["signed_in"])

    def test_me_follows_provider_user(self):
        from session import SessionContext

        provider = MagicMock()
        provider.auth.sign_in_with_password.return_value = SimpleNamespace(
            user=SimpleNamespace(email="asha@example.com", user_metadata={"name": "Asha"})
        )
        self.app.state.session = SessionContext(provider)
        login = self._post("/api/login", data={"email": "asha@example.com", "password": "pw"})
        self.assertEqual(login.json()["user"]["name"], "Asha")

        provider.auth.get_user.return_value = SimpleNamespace(
            user=SimpleNamespace(email="asha@example.com", user_metadata={"name": "Asha R"})
        )
        self.assertEqual(self.client.get("/api/me").json()["name"], "Asha R")

        provider.auth.get_user.side_effect = RuntimeError("JWT expired")
        self.assertFalse(self.client.get("/api/me").json()["signed_in"])

    def test_malformed_storage_reads_as_empty(self):
        with self._db.get_db() as conn:
            self._db._set_item(conn, "carescan_predictions", "{broken")
        self.assertEqual(self.client.get("/api/predictions").json(), {"predictions": []})
        self.assertEqual(self.client.get("/api/trends").json()["total"], 0)

    def test_odd_stored_types_still_render_trends(self):
        with self._db.get_db() as conn:
            self._db._set_item(conn, "carescan_predictions", '[{"type": ["Diabetes"], "result": "x"}]')
        resp = self.client.get("/api/trends")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["counts"], {"['Diabetes']": 1})
        self.assertEqual(self.client.get("/api/reports").status_code, 200)


if __name__ == "__main__":
    unittest.main()
