"""
Tree assembly and month / folder CRUD.
"""

import io
import os
from datetime import timedelta

import pytest

from po_tracker.core.exceptions import AuthenticationError, ConflictError, NotFoundError, ValidationError
from po_tracker.models import db
from po_tracker.models.audit import AuditLog
from po_tracker.models.workflow import Month, POFolder, StepFile, StepRecord
from po_tracker.services import file_storage, step_service, tree_service
from po_tracker.utils.helpers import utcnow


def _step(folder, step_no):
    return StepRecord.query.filter_by(folder_id=folder.id, step_no=step_no).one()


# ═══════════════════════════════════════════════════════════════
# Months
# ═══════════════════════════════════════════════════════════════

class TestMonths:
    @pytest.mark.parametrize("label,key", [
        ("Jan 2026", "2026-01"),
        ("February 2026", "2026-02"),
        ("  dec   2025 ", "2025-12"),
        ("2026-07", "2026-07"),
    ])
    def test_month_key_from_label(self, label, key):
        assert tree_service.month_key_from_label(label) == key

    def test_unparseable_label(self):
        assert tree_service.month_key_from_label("sometime soon") is None

    def test_create_month_derives_key(self, regular_user):
        month = tree_service.create_month("Mar 2026", regular_user)
        assert month.month_key == "2026-03"
        assert month.created_by == "intern"

    def test_create_month_with_explicit_key(self, regular_user):
        month = tree_service.create_month("Q1 kickoff", regular_user, month_key="2026-01")
        assert month.month_key == "2026-01"
        assert month.label == "Q1 kickoff"

    def test_invalid_explicit_key(self, regular_user):
        with pytest.raises(ValidationError):
            tree_service.create_month("x", regular_user, month_key="2026-13")

    def test_invalid_label(self, regular_user):
        with pytest.raises(ValidationError):
            tree_service.create_month("not a month", regular_user)

    def test_duplicate_key_conflicts(self, month, regular_user):
        with pytest.raises(ConflictError):
            tree_service.create_month("February 2026", regular_user)

    def test_rename_month(self, month, admin_user):
        tree_service.rename_month(month.id, "Feb 2026 (late)", admin_user)
        m = db.session.get(Month, month.id)
        assert m.label == "Feb 2026 (late)"
        assert m.month_key == "2026-02"
        assert m.updated_by == "boss"

    def test_rename_month_requires_label(self, month, regular_user):
        with pytest.raises(ValidationError):
            tree_service.rename_month(month.id, "  ", regular_user)

    def test_create_month_unauthenticated(self):
        with pytest.raises(AuthenticationError):
            tree_service.create_month("Jan 2026", None)
        assert Month.query.count() == 0

    def test_delete_month_cascades(self, app, folder, month, regular_user):
        result = step_service.attach_file(
            _step(folder, 1).id, io.BytesIO(b"data"), "q.pdf", regular_user,
        )
        path = file_storage.path_for(result["storage_key"])
        assert os.path.isfile(path)

        removed = tree_service.delete_month(month.id, regular_user)

        assert removed == 1
        assert Month.query.count() == 0
        assert POFolder.query.count() == 0
        assert StepRecord.query.count() == 0
        assert StepFile.query.count() == 0
        assert not os.path.exists(path)
        assert AuditLog.query.filter_by(action="month.deleted").count() == 1

    def test_delete_unknown_month(self, regular_user):
        with pytest.raises(NotFoundError):
            tree_service.delete_month(999, regular_user)

    def test_rename_month_unauthenticated(self, month):
        with pytest.raises(AuthenticationError):
            tree_service.rename_month(month.id, "Renamed", None)
        m = db.session.get(Month, month.id)
        assert m.label == "Feb 2026"
        assert AuditLog.query.filter_by(action="month.renamed").count() == 0

    def test_delete_month_unauthenticated(self, folder, month, regular_user):
        result = step_service.attach_file(
            _step(folder, 1).id, io.BytesIO(b"data"), "q.pdf", regular_user,
        )
        with pytest.raises(AuthenticationError):
            tree_service.delete_month(month.id, None)
        assert Month.query.count() == 1
        assert POFolder.query.count() == 1
        assert StepFile.query.count() == 1
        assert os.path.isfile(file_storage.path_for(result["storage_key"]))


# ═══════════════════════════════════════════════════════════════
# Folders
# ═══════════════════════════════════════════════════════════════

class TestFolders:
    def test_create_folder_parses_name(self, folder):
        assert folder.capex_opex == "CAPEX"
        assert folder.it_ref_no == "IT-001"
        assert folder.title == "Hello World"
        assert folder.created_by == "intern"

    def test_create_folder_seeds_steps(self, folder):
        assert StepRecord.query.filter_by(folder_id=folder.id).count() == 9
        assert AuditLog.query.filter_by(action="folder.created").count() == 1

    def test_create_folder_requires_name(self, month, regular_user):
        with pytest.raises(ValidationError):
            tree_service.create_folder(month.id, "   ", regular_user)
        assert POFolder.query.count() == 0

    def test_create_folder_unknown_month(self, regular_user):
        with pytest.raises(NotFoundError):
            tree_service.create_folder(404, "IT-1_CAPEX_x", regular_user)

    def test_create_folder_unauthenticated(self, month):
        with pytest.raises(AuthenticationError):
            tree_service.create_folder(month.id, "IT-1_CAPEX_x", None)
        assert POFolder.query.count() == 0

    def test_rename_reparses(self, folder, regular_user):
        tree_service.rename_folder(folder.id, "IT-077_OPEX_Licences", regular_user)
        f = db.session.get(POFolder, folder.id)
        assert (f.capex_opex, f.it_ref_no, f.title) == ("OPEX", "IT-077", "Licences")
        assert f.folder_name == "IT-077_OPEX_Licences"

    def test_rename_folder_unauthenticated(self, folder):
        with pytest.raises(AuthenticationError):
            tree_service.rename_folder(folder.id, "IT-077_OPEX_Licences", None)
        f = db.session.get(POFolder, folder.id)
        assert (f.folder_name, f.it_ref_no, f.title) == (
            "2026-02-IT-001_CAPEX_Hello World", "IT-001", "Hello World",
        )
        assert AuditLog.query.filter_by(action="folder.renamed").count() == 0

    def test_delete_folder_unauthenticated(self, folder, regular_user):
        result = step_service.attach_file(
            _step(folder, 2).id, io.BytesIO(b"x"), "form.xlsx", regular_user,
        )
        with pytest.raises(AuthenticationError):
            tree_service.delete_folder(folder.id, None)
        assert db.session.get(POFolder, folder.id) is not None
        assert StepRecord.query.filter_by(folder_id=folder.id).count() == 9
        assert StepFile.query.count() == 1
        assert os.path.isfile(file_storage.path_for(result["storage_key"]))

    def test_delete_folder_removes_files(self, folder, regular_user):
        result = step_service.attach_file(
            _step(folder, 2).id, io.BytesIO(b"x"), "form.xlsx", regular_user,
        )
        path = file_storage.path_for(result["storage_key"])

        tree_service.delete_folder(folder.id, regular_user)

        assert POFolder.query.count() == 0
        assert StepRecord.query.count() == 0
        assert StepFile.query.count() == 0
        assert not os.path.exists(path)


# ═══════════════════════════════════════════════════════════════
# Read projections
# ═══════════════════════════════════════════════════════════════

class TestBuildTree:
    def test_months_newest_first_with_progress(self, folder, regular_user):
        tree_service.create_month("Jan 2026", regular_user)
        tree_service.create_month("Mar 2026", regular_user)

        tree = tree_service.build_tree()

        assert [m["month_key"] for m in tree] == ["2026-03", "2026-02", "2026-01"]
        feb = tree[1]
        assert feb["po_count"] == 1
        po = feb["pos"][0]
        assert po["it_ref_no"] == "IT-001"
        assert (po["total_steps"], po["done_steps"], po["is_all_done"]) == (9, 0, False)

    def test_folders_newest_first(self, month, regular_user):
        first = tree_service.create_folder(month.id, "IT-1_CAPEX_first", regular_user)
        second = tree_service.create_folder(month.id, "IT-2_CAPEX_second", regular_user)
        ids = [p["id"] for p in tree_service.build_tree()[0]["pos"]]
        assert ids == [second.id, first.id]

    def test_progress_reflects_step_state(self, folder, regular_user):
        step_service.update_step_flags(_step(folder, 9).id, {"paid_done": True}, regular_user)
        step_service.update_step_flags(_step(folder, 6).id, {"outlook_done": True}, regular_user)
        po = tree_service.build_tree()[0]["pos"][0]
        assert po["done_steps"] == 2

    def test_all_done(self, folder, regular_user):
        for n in (1, 2, 3, 4, 7):
            step_service.attach_file(_step(folder, n).id, io.BytesIO(b"x"), f"{n}.pdf", regular_user)
        for n in (5, 8):
            step_service.update_step_flags(
                _step(folder, n).id,
                {"masterlist_done": True, "sharepoint_done": True, "notion_done": True},
                regular_user,
            )
        step_service.update_step_flags(_step(folder, 6).id, {"outlook_done": True}, regular_user)
        step_service.update_step_flags(_step(folder, 9).id, {"paid_done": True}, regular_user)

        po = tree_service.build_tree()[0]["pos"][0]
        assert po["done_steps"] == 9
        assert po["is_all_done"] is True

    def test_search_filters_folders_and_drops_empty_months(self, folder, month, regular_user):
        tree_service.create_folder(month.id, "IT-002_OPEX_Cables", regular_user)
        tree_service.create_month("Jan 2026", regular_user)

        tree = tree_service.build_tree("cables")

        assert len(tree) == 1
        assert [p["title"] for p in tree[0]["pos"]] == ["Cables"]

    def test_search_matching_month_keeps_all_folders(self, folder, month, regular_user):
        tree_service.create_folder(month.id, "IT-002_OPEX_Cables", regular_user)
        tree = tree_service.build_tree("feb")
        assert tree[0]["po_count"] == 2

    def test_empty_tree(self):
        assert tree_service.build_tree() == []


class TestFolderDetail:
    def test_steps_merge_catalog_and_state(self, folder):
        detail = tree_service.get_folder_detail(folder.id)
        assert detail["po"]["id"] == folder.id
        steps = detail["steps"]
        assert [s["step_no"] for s in steps] == list(range(1, 10))
        assert steps[0]["step_title"] == "Quotation"
        assert steps[0]["files"] == []
        assert steps[4]["rule_kind"] == "TRIPLE_CHECKBOX"
        assert steps[8]["accepts_files"] is False

    def test_payment_not_overdue_when_new(self, folder):
        steps = tree_service.get_folder_detail(folder.id)["steps"]
        assert steps[8]["is_overdue"] is False

    def test_payment_overdue_after_two_weeks(self, folder):
        folder.created_at = utcnow() - timedelta(days=15)
        db.session.commit()
        steps = tree_service.get_folder_detail(folder.id)["steps"]
        assert steps[8]["is_overdue"] is True
        assert not any(s["is_overdue"] for s in steps[:8])

    def test_paid_step_is_never_overdue(self, folder, regular_user):
        folder.created_at = utcnow() - timedelta(days=30)
        db.session.commit()
        step_service.update_step_flags(_step(folder, 9).id, {"paid_done": True}, regular_user)
        assert tree_service.get_folder_detail(folder.id)["steps"][8]["is_overdue"] is False

    def test_detail_lists_files(self, folder, regular_user):
        step_service.attach_file(_step(folder, 1).id, io.BytesIO(b"x"), "q.pdf", regular_user)
        files = tree_service.get_folder_detail(folder.id)["steps"][0]["files"]
        assert len(files) == 1
        assert files[0]["file_path"] == f"/api/v1/files/{files[0]['id']}"

    def test_unknown_folder(self):
        with pytest.raises(NotFoundError):
            tree_service.get_folder_detail(12345)
