"""
Step mutation service — flag toggles, attach / detach, done recompute.

Tests cover:
  - Folder creation seeds 9 undone steps
  - TRIPLE_CHECKBOX / single-checkbox updates, unrelated keys ignored
  - FILE_PRESENCE: attach flips done, detaching the last file flips back
  - Missing stored content on detach is not an error
  - Unauthenticated callers are rejected and nothing changes
  - Checkbox-only steps refuse uploads
  - Every mutation touches the parent folder and writes an audit row
"""

import io
import os

import pytest

from po_tracker.core.exceptions import AuthenticationError, NotFoundError, ValidationError
from po_tracker.models import db
from po_tracker.models.audit import AuditLog
from po_tracker.models.workflow import StepFile, StepRecord
from po_tracker.services import file_storage, step_service


def _step(folder, step_no):
    return StepRecord.query.filter_by(folder_id=folder.id, step_no=step_no).one()


def _attach(step, actor, name="quote.pdf", content=b"%PDF-1.4 test"):
    return step_service.attach_file(step.id, io.BytesIO(content), name, actor)


class TestFolderSeed:
    def test_nine_steps_none_done(self, folder):
        steps = StepRecord.query.filter_by(folder_id=folder.id).order_by(StepRecord.step_no).all()
        assert [s.step_no for s in steps] == list(range(1, 10))
        assert not any(s.is_done for s in steps)


class TestUpdateFlags:
    def test_triple_checkbox_needs_all_three(self, folder, regular_user):
        step = _step(folder, 5)
        step_service.update_step_flags(step.id, {"masterlist_done": True, "sharepoint_done": True}, regular_user)
        assert step.is_done is False

        step_service.update_step_flags(step.id, {"notion_done": True}, regular_user)
        assert step.is_done is True

        step_service.update_step_flags(step.id, {"sharepoint_done": False}, regular_user)
        assert step.is_done is False

    def test_payment_checkbox(self, folder, regular_user):
        step = _step(folder, 9)
        step_service.update_step_flags(step.id, {"paid_done": True}, regular_user)
        assert db.session.get(StepRecord, step.id).is_done is True

    def test_string_booleans(self, folder, regular_user):
        step = _step(folder, 6)
        step_service.update_step_flags(step.id, {"outlook_done": "true"}, regular_user)
        assert step.is_done is True
        step_service.update_step_flags(step.id, {"outlook_done": "0"}, regular_user)
        assert step.is_done is False

    def test_flags_of_other_kinds_are_ignored(self, folder, regular_user):
        step = _step(folder, 6)
        step_service.update_step_flags(
            step.id, {"paid_done": True, "masterlist_done": True, "bogus": 1}, regular_user,
        )
        assert step.paid_done is False
        assert step.masterlist_done is False
        assert step.is_done is False

    def test_flags_on_file_step_do_not_complete_it(self, folder, regular_user):
        step = _step(folder, 1)
        step_service.update_step_flags(step.id, {"paid_done": True, "outlook_done": True}, regular_user)
        assert step.is_done is False

    def test_touches_step_and_folder(self, folder, regular_user, admin_user):
        step = _step(folder, 9)
        step_service.update_step_flags(step.id, {"paid_done": True}, admin_user)
        assert step.updated_by == "boss"
        assert folder.updated_by == "boss"

    def test_writes_audit_row_on_change(self, folder, regular_user):
        step = _step(folder, 9)
        step_service.update_step_flags(step.id, {"paid_done": True}, regular_user)
        log = AuditLog.query.filter_by(entity_type="po_step", entity_id=str(step.id)).one()
        assert log.action == "step.flags_updated"
        assert (log.from_value, log.to_value) == ("false", "true")
        assert log.actor == "intern"

    def test_no_audit_row_when_nothing_changes(self, folder, regular_user):
        step = _step(folder, 9)
        step_service.update_step_flags(step.id, {"paid_done": False}, regular_user)
        assert AuditLog.query.filter_by(entity_type="po_step").count() == 0

    def test_unauthenticated_is_rejected(self, folder):
        step = _step(folder, 9)
        with pytest.raises(AuthenticationError):
            step_service.update_step_flags(step.id, {"paid_done": True}, None)
        assert db.session.get(StepRecord, step.id).paid_done is False

    def test_unknown_step(self, regular_user):
        with pytest.raises(NotFoundError):
            step_service.update_step_flags(9999, {"paid_done": True}, regular_user)


class TestFiles:
    def test_attach_marks_file_step_done(self, app, folder, regular_user):
        step = _step(folder, 1)
        result = _attach(step, regular_user)

        assert set(result) == {"id", "file_name", "storage_key"}
        assert result["file_name"] == "quote.pdf"
        assert result["storage_key"].endswith("_quote.pdf")
        assert step.is_done is True
        assert os.path.isfile(os.path.join(app.config["UPLOAD_FOLDER"], result["storage_key"]))

        f = db.session.get(StepFile, result["id"])
        assert f.size_bytes == len(b"%PDF-1.4 test")
        assert f.uploaded_by == "intern"

    def test_storage_key_is_sanitized(self, folder, regular_user):
        step = _step(folder, 2)
        result = _attach(step, regular_user, name="../../etc/pass wd.pdf")
        assert "/" not in result["storage_key"]
        assert ".." not in result["storage_key"]
        assert result["file_name"] == "../../etc/pass wd.pdf"

    def test_unusable_name_falls_back(self, folder, regular_user):
        step = _step(folder, 2)
        result = _attach(step, regular_user, name="???")
        assert result["storage_key"].endswith("_file")

    def test_second_attach_keeps_done_and_detach_one_keeps_done(self, folder, regular_user):
        step = _step(folder, 3)
        first = _attach(step, regular_user, name="a.pdf")
        _attach(step, regular_user, name="b.pdf")
        assert step.is_done is True

        step_service.detach_file(first["id"], regular_user)
        assert step.is_done is True

    def test_detach_last_file_flips_done(self, app, folder, regular_user):
        step = _step(folder, 4)
        result = _attach(step, regular_user)
        path = os.path.join(app.config["UPLOAD_FOLDER"], result["storage_key"])

        step_service.detach_file(result["id"], regular_user)

        assert step.is_done is False
        assert db.session.get(StepFile, result["id"]) is None
        assert not os.path.exists(path)

    def test_detach_with_missing_content_succeeds(self, folder, regular_user):
        step = _step(folder, 7)
        result = _attach(step, regular_user)
        os.remove(file_storage.path_for(result["storage_key"]))

        step_service.detach_file(result["id"], regular_user)
        assert step.is_done is False
        assert StepFile.query.count() == 0

    def test_attach_and_detach_are_audited(self, folder, regular_user):
        step = _step(folder, 1)
        result = _attach(step, regular_user)
        step_service.detach_file(result["id"], regular_user)
        actions = [log.action for log in AuditLog.query.filter_by(entity_type="po_step").order_by(AuditLog.id)]
        assert actions == ["step.file_attached", "step.file_detached"]

    def test_attach_requires_stream(self, folder, regular_user):
        with pytest.raises(ValidationError):
            step_service.attach_file(_step(folder, 1).id, None, "x.pdf", regular_user)

    def test_attach_unauthenticated(self, folder):
        step = _step(folder, 1)
        with pytest.raises(AuthenticationError):
            step_service.attach_file(step.id, io.BytesIO(b"x"), "x.pdf", None)
        assert StepFile.query.count() == 0
        assert step.is_done is False

    def test_detach_unknown_file(self, regular_user):
        with pytest.raises(NotFoundError):
            step_service.detach_file(424242, regular_user)

    def test_detach_unauthenticated(self, folder, regular_user):
        step = _step(folder, 1)
        result = _attach(step, regular_user)
        with pytest.raises(AuthenticationError):
            step_service.detach_file(result["id"], None)
        assert db.session.get(StepFile, result["id"]) is not None
        assert step.is_done is True
        assert os.path.isfile(file_storage.path_for(result["storage_key"]))
        assert AuditLog.query.filter_by(action="step.file_detached").count() == 0

    @pytest.mark.parametrize("step_no", [5, 6, 8, 9])
    def test_checkbox_steps_reject_uploads(self, app, folder, regular_user, step_no):
        step = _step(folder, step_no)
        with pytest.raises(ValidationError):
            _attach(step, regular_user)
        assert StepFile.query.count() == 0
        assert step.is_done is False
        assert os.listdir(app.config["UPLOAD_FOLDER"]) == []

    def test_recompute_is_idempotent(self, folder, regular_user):
        step = _step(folder, 1)
        _attach(step, regular_user)
        assert step_service.recompute_step_done(step) is True
        assert step_service.recompute_step_done(step) is True
