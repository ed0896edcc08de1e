"""
Tests for catalog.py and database seeding of roles and permissions.
"""

import sqlite3

import pytest

import catalog
import database
from catalog import (
    CATEGORIES,
    PERMISSIONS,
    ROLE_PERMISSIONS,
    permission_names,
    permissions_for_role,
    role_names,
)


class TestCatalog:
    def test_counts(self):
        assert len(PERMISSIONS) == 58
        assert len(role_names()) == 7
        assert len(CATEGORIES) == 9

    def test_names_unique(self):
        assert len(set(permission_names())) == len(PERMISSIONS)

    def test_every_mapped_permission_exists(self):
        known = set(permission_names())
        for role, names in ROLE_PERMISSIONS.items():
            assert set(names) <= known, role

    def test_every_permission_has_known_category(self):
        assert {p["category"] for p in PERMISSIONS} == set(CATEGORIES)

    def test_admin_holds_everything(self):
        assert set(permissions_for_role("admin")) == set(permission_names())

    def test_role_specifics(self):
        assert "dispense_prescriptions" in permissions_for_role("pharmacist")
        assert "dispense_prescriptions" not in permissions_for_role("doctor")
        assert "view_all_patients" in permissions_for_role("doctor")
        assert "view_all_patients" not in permissions_for_role("nurse")
        assert "mark_appointment_complete" not in permissions_for_role("secretary")
        assert permissions_for_role("patient") == [
            "view_own_record",
            "view_own_appointments", "schedule_own_appointments", "cancel_own_appointments",
            "view_own_consultations",
            "view_own_prescriptions",
            "view_own_lab_orders", "download_lab_reports",
            "upload_documents", "view_own_documents", "download_documents",
        ]

    def test_unknown_role(self):
        assert permissions_for_role("janitor") == []


class TestSeeding:
    def test_tables_seeded(self):
        assert len(database.list_permissions()) == 58
        assert [r["name"] for r in database.list_roles()] == role_names()

    def test_role_permissions_match_catalog(self):
        for role in role_names():
            seeded = [p["name"] for p in database.get_role_permissions(role)]
            assert set(seeded) == set(ROLE_PERMISSIONS[role]), role

    def test_second_seed_is_skipped(self, caplog):
        conn = sqlite3.connect(database.DATABASE_PATH)
        try:
            with caplog.at_level("INFO", logger="database"):
                database.seed_roles_and_permissions(conn)
        finally:
            conn.close()
        assert "already seeded" in caplog.text
        assert len(database.list_permissions()) == 58

    def test_role_without_permissions_aborts(self, monkeypatch, tmp_path):
        monkeypatch.setattr(database, "ROLE_PERMISSIONS", {**catalog.ROLE_PERMISSIONS, "nurse": ["no_such_permission"]})
        conn = sqlite3.connect(tmp_path / "broken.db")
        try:
            for statement in database.SCHEMA:
                conn.execute(statement)
            with pytest.raises(RuntimeError, match="nurse"):
                database.seed_roles_and_permissions(conn)
            assert conn.execute("SELECT COUNT(*) FROM permissions").fetchone()[0] == 0
            assert conn.execute("SELECT COUNT(*) FROM roles").fetchone()[0] == 0
        finally:
            conn.close()

    def test_default_users_one_per_role(self):
        roles = {u["role"] for u in database.list_users()}
        assert roles == set(role_names())

    def test_default_patient_has_profile(self, user_ids):
        assert database.find_row("patients", user_id=user_ids["patient1"]) is not None

    def test_disabled_permissions_reduce_effective_set(self, user_ids):
        nurse = database.get_user_by_id(user_ids["nurse1"])
        database.set_disabled_permissions(nurse["id"], ["collect_specimens"])
        names = [p["name"] for p in database.get_effective_permissions(nurse)]
        assert "collect_specimens" not in names
        assert "view_lab_orders" in names
