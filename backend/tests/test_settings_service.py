import unittest
from flask import Flask

from subshop.extensions import db
from subshop.errors import ValidationError
from subshop.models import StoreSettings
from subshop.services import settings_service


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = Flask(__name__)
        cls.app.config.update(
            SECRET_KEY="test",
            SQLALCHEMY_DATABASE_URI="sqlite:///:memory:",
            SQLALCHEMY_TRACK_MODIFICATIONS=False,
            TESTING=True,
        )
        db.init_app(cls.app)
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        from subshop import models  # noqa: F401
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        db.session.query(StoreSettings).delete()
        db.session.commit()

    def test_get_settings_creates_single_blank_row(self):
        first = settings_service.get_settings()
        second = settings_service.get_settings()

        self.assertEqual(first.id, second.id)
        self.assertEqual(db.session.query(StoreSettings).count(), 1)
        self.assertEqual(first.upi_id, "")

    def test_update_settings_strips_and_ignores_unknown_fields(self):
        settings = settings_service.update_settings({
            "upi_id": "  shop@upi ",
            "telegram_username": "@subshop",
            "is_admin": True,
        })

        self.assertEqual(settings.upi_id, "shop@upi")
        self.assertEqual(settings.telegram_username, "@subshop")
        self.assertNotIn("is_admin", settings.to_dict())

    def test_update_settings_none_clears_value(self):
        settings_service.update_settings({"contact_phone": "+91 90000 00000"})

        settings = settings_service.update_settings({"contact_phone": None})

        self.assertEqual(settings.contact_phone, "")

    def test_update_settings_rejects_non_string(self):
        with self.assertRaises(ValidationError):
            settings_service.update_settings({"upi_id": 12345})


if __name__ == "__main__":
    unittest.main()
