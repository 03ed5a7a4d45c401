"""
Tests for the import workflow state machine.
"""
import pytest

from app.schemas.csv_import import CommitResult, UploadProgress, UploadStatus
from app.services.import_workflow_service import (
    ImportStage,
    ImportWorkflow,
    ImportWorkflowError,
    UploadedFile,
    is_allowed_file,
)
from app.services.mapping_validation_service import validate_mapping

SCENARIO_CSV = "Name,Phone\nAlice,555-1234\nBob,notaphone"
UNMAPPED_CSV = "X,Y\nfoo,bar"


def _to_mapping(workflow, make_file, text=SCENARIO_CSV):
    workflow.select_file(make_file("leads.csv", text))
    workflow.advance()
    assert workflow.stage == ImportStage.MAPPING
    return workflow


class TestFileSelection:

    @pytest.mark.parametrize("name", ["leads.csv", "LEADS.CSV", "export.Xls"])
    def test_allowed_extensions(self, name):
        assert is_allowed_file(name, [".csv", ".xls"])

    @pytest.mark.parametrize("name", ["report.pdf", "leads.xlsx", "csv", "leads.csv.txt"])
    def test_rejected_extensions(self, name):
        assert not is_allowed_file(name, [".csv", ".xls"])

    def test_wrong_type_sets_error_and_stays_in_upload(self, workflow, make_file):
        session = workflow.select_file(make_file("report.pdf"))
        assert session.stage == ImportStage.UPLOAD
        assert session.file is None
        assert "Unsupported file type" in session.file_error
        assert not workflow.can_advance

    def test_valid_file_replaces_selection_and_clears_error(self, workflow, make_file):
        workflow.select_file(make_file("report.pdf"))
        workflow.select_file(make_file("first.csv", SCENARIO_CSV))
        session = workflow.select_file(make_file("second.csv", SCENARIO_CSV))
        assert session.file.name == "second.csv"
        assert session.file_error is None
        assert workflow.can_advance

    def test_advance_without_file(self, workflow):
        with pytest.raises(ImportWorkflowError):
            workflow.advance()

    def test_select_file_only_in_upload(self, workflow, make_file):
        _to_mapping(workflow, make_file)
        with pytest.raises(ImportWorkflowError):
            workflow.select_file(make_file("other.csv"))


class TestMappingStage:

    def test_csv_enters_mapping_with_auto_mapping(self, workflow, make_file, committer):
        _to_mapping(workflow, make_file)
        session = workflow.session
        assert session.row_count == 2
        assert [c.header for c in session.columns] == ["Name", "Phone"]
        assert session.mapping["name"].source_column == "Name"
        assert session.mapping["phone"].source_column == "Phone"
        assert committer.calls == []

    def test_update_mapping_reassigns_and_unmaps(self, workflow, make_file):
        _to_mapping(workflow, make_file, "Name,Phone,Notes\nA,5551234,hi")
        workflow.update_mapping("notes", None)
        assert not workflow.session.mapping["notes"].is_mapped
        workflow.update_mapping("company", "Notes")
        assert workflow.session.mapping["company"].source_column == "Notes"
        assert workflow.session.mapping["company"].required is False

    def test_column_used_by_another_field_is_rejected(self, workflow, make_file):
        _to_mapping(workflow, make_file)
        with pytest.raises(ImportWorkflowError, match="already mapped"):
            workflow.update_mapping("email", "Phone")
        # Re-selecting into the owning field is fine
        workflow.update_mapping("phone", "Phone")
        assert workflow.selectable_columns("email") == []
        assert workflow.selectable_columns("phone") == ["Phone"]

    def test_unknown_field_or_column(self, workflow, make_file):
        _to_mapping(workflow, make_file)
        with pytest.raises(ImportWorkflowError):
            workflow.update_mapping("fax", "Phone")
        with pytest.raises(ImportWorkflowError):
            workflow.update_mapping("email", "Missing")

    def test_update_mapping_outside_mapping_stage(self, workflow):
        with pytest.raises(ImportWorkflowError):
            workflow.update_mapping("name", "Name")

    def test_cannot_advance_with_unmapped_required_field(self, workflow, make_file):
        _to_mapping(workflow, make_file, UNMAPPED_CSV)
        assert workflow.session.mapping == {}
        assert not workflow.can_advance
        with pytest.raises(ImportWorkflowError, match="Full Name"):
            workflow.advance()
        assert workflow.stage == ImportStage.MAPPING

    def test_back_to_upload(self, workflow, make_file):
        _to_mapping(workflow, make_file)
        workflow.back()
        assert workflow.stage == ImportStage.UPLOAD
        assert workflow.session.file.name == "leads.csv"


class TestValidationStage:

    def test_scenario_warning_only_allows_commit(self, workflow, make_file, committer):
        _to_mapping(workflow, make_file)
        session = workflow.advance()
        assert session.stage == ImportStage.VALIDATION
        assert session.report.errors == []
        assert [w.field_label for w in session.report.warnings] == ["Phone Number"]
        assert workflow.can_commit

        session = workflow.advance()
        assert session.stage == ImportStage.PROGRESS
        assert committer.calls[0].name == "leads.csv"

    def test_blocking_error_prevents_commit(self, workflow, make_file, committer):
        _to_mapping(workflow, make_file, UNMAPPED_CSV)
        session = workflow.session
        session.stage = ImportStage.VALIDATION
        session.report = validate_mapping(session.columns, session.mapping, session.row_count)

        assert workflow.session.report.has_blocking_errors
        assert not workflow.can_advance
        assert not workflow.can_commit
        with pytest.raises(ImportWorkflowError):
            workflow.commit_now()
        with pytest.raises(ImportWorkflowError):
            workflow.advance()
        assert committer.calls == []

    def test_back_discards_report_and_recomputes(self, workflow, make_file):
        _to_mapping(workflow, make_file)
        workflow.advance()
        workflow.back()
        assert workflow.stage == ImportStage.MAPPING
        assert workflow.session.report is None
        workflow.update_mapping("phone", None)
        workflow.update_mapping("phone", "Phone")
        report = workflow.advance().report
        assert report is not None

    def test_back_to_any_earlier_stage(self, workflow, make_file):
        _to_mapping(workflow, make_file)
        workflow.advance()
        workflow.back(ImportStage.UPLOAD)
        assert workflow.stage == ImportStage.UPLOAD

    def test_back_cannot_move_forward(self, workflow, make_file):
        _to_mapping(workflow, make_file)
        with pytest.raises(ImportWorkflowError):
            workflow.back(ImportStage.VALIDATION)
        with pytest.raises(ImportWorkflowError):
            workflow.back(ImportStage.MAPPING)

    def test_commit_now_from_mapping_is_rejected(self, workflow, make_file):
        _to_mapping(workflow, make_file)
        with pytest.raises(ImportWorkflowError):
            workflow.commit_now()


class TestDirectCommit:

    def test_xls_skips_mapping(self, workflow, make_file, committer):
        workflow.select_file(UploadedFile(name="leads.xls", content=b"\xd0\xcf\x11\xe0"))
        assert workflow.can_commit
        session = workflow.advance()
        assert session.stage == ImportStage.PROGRESS
        assert session.columns == []
        assert session.mapping == {}
        assert [f.name for f in committer.calls] == ["leads.xls"]

    def test_unreadable_csv_falls_back_to_raw_commit(self, workflow, committer):
        workflow.select_file(UploadedFile(name="broken.csv", content=b"\xff\xfe\xfa\x00bad"))
        session = workflow.advance()
        assert session.stage == ImportStage.PROGRESS
        assert session.file_error is None
        assert [f.name for f in committer.calls] == ["broken.csv"]

    def test_commit_now_for_csv_in_upload_is_rejected(self, workflow, make_file):
        workflow.select_file(make_file("leads.csv", SCENARIO_CSV))
        assert not workflow.can_commit
        with pytest.raises(ImportWorkflowError):
            workflow.commit_now()


class TestProgress:

    def _commit(self, workflow, make_file):
        workflow.select_file(make_file("leads.xls"))
        return workflow.advance()

    def test_completed_progress_uses_commit_result(self, make_file):
        result = CommitResult(success=True, leads_added=7, total_leads=9, duplicates_skipped=2)
        workflow = ImportWorkflow(committer=lambda f, report: result)
        session = self._commit(workflow, make_file)
        assert session.progress.status == UploadStatus.COMPLETED
        assert session.progress.progress == 100
        assert session.progress.total_leads == 9
        assert session.progress.valid_leads == 7
        assert session.commit_result == result
        assert workflow.can_close

    def test_committer_progress_updates_are_applied(self, workflow, make_file, committer):
        self._commit(workflow, make_file)
        assert committer.applied == [True]

    def test_unsuccessful_result_is_error(self, make_file):
        result = CommitResult(success=False, errors=["Missing required columns"])
        workflow = ImportWorkflow(committer=lambda f, report: result)
        session = self._commit(workflow, make_file)
        assert session.progress.status == UploadStatus.ERROR
        assert session.progress.errors == ["Missing required columns"]

    def test_committer_exception_is_error(self, make_file):
        def failing(file, report):
            raise RuntimeError("storage unavailable")

        workflow = ImportWorkflow(committer=failing)
        session = self._commit(workflow, make_file)
        assert session.stage == ImportStage.PROGRESS
        assert session.progress.status == UploadStatus.ERROR
        assert session.progress.errors == ["storage unavailable"]

    def test_no_second_commit_or_back_from_progress(self, workflow, make_file, committer):
        self._commit(workflow, make_file)
        with pytest.raises(ImportWorkflowError):
            workflow.commit_now()
        with pytest.raises(ImportWorkflowError):
            workflow.advance()
        with pytest.raises(ImportWorkflowError):
            workflow.back()
        assert len(committer.calls) == 1

    def test_close_blocked_while_running(self, make_file):
        seen = {}

        def slow(file, report):
            seen["can_close"] = workflow.can_close
            with pytest.raises(ImportWorkflowError):
                workflow.close()
            report(UploadProgress(file_name=file.name, status=UploadStatus.PROCESSING, progress=60))
            seen["status"] = workflow.session.progress.status
            return CommitResult(success=True)

        workflow = ImportWorkflow(committer=slow)
        self._commit(workflow, make_file)
        assert seen == {"can_close": False, "status": UploadStatus.PROCESSING}

    def test_backward_progress_is_ignored(self, make_file):
        def pushes(file, report):
            report(UploadProgress(file_name=file.name, status=UploadStatus.PROCESSING, progress=60))
            applied = report(UploadProgress(file_name=file.name, status=UploadStatus.UPLOADING, progress=10))
            assert applied is False
            return CommitResult(success=True)

        workflow = ImportWorkflow(committer=pushes)
        session = self._commit(workflow, make_file)
        assert session.progress.status == UploadStatus.COMPLETED

    def test_progress_outside_progress_stage_is_ignored(self, workflow):
        update = UploadProgress(file_name="x.csv", status=UploadStatus.PROCESSING)
        assert workflow.report_progress(update) is False
        assert workflow.session.progress is None

    def test_close_resets_session(self, workflow, make_file):
        self._commit(workflow, make_file)
        session = workflow.close()
        assert session.stage == ImportStage.UPLOAD
        assert session.file is None
        assert session.progress is None
        assert session.report is None

    def test_close_from_any_idle_stage(self, workflow, make_file):
        _to_mapping(workflow, make_file)
        assert workflow.close().stage == ImportStage.UPLOAD
