"""Tests for the pure lifecycle engine."""

from datetime import datetime
from types import SimpleNamespace

import pytest

from chapterflow.exceptions import GuardFailed, Unauthorized, ValidationFailed
from chapterflow.models.enums import ChapterStatus, Role
from chapterflow.services.lifecycle import (
    PERMISSIONS,
    TRANSITIONS,
    Actor,
    TransitionKind,
    TransitionPayload,
    apply_transition,
    available_transitions,
    can_modify_files,
    invariant_violations,
    is_permitted,
)

NOW = datetime(2026, 2, 1, 12, 0, 0)

WRITER = Actor(user_id="writer-a", role=Role.WRITER)
OTHER_WRITER = Actor(user_id="writer-d", role=Role.WRITER)
EDITOR = Actor(user_id="editor-b", role=Role.EDITOR)
ADMIN = Actor(user_id="admin-c", role=Role.ADMIN)


def make_chapter(status=ChapterStatus.DRAFT, **overrides):
    fields = dict(
        status=status.value,
        writer_id="writer-a",
        original_body=None,
        edited_body=None,
        edited_by=None,
        edited_at=None,
        reviewed_by=None,
        reviewed_at=None,
        confirmed_by=None,
        confirmed_at=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def apply_patch(chapter, plan):
    for name, value in plan.patch.items():
        setattr(chapter, name, value)
    return chapter


class TestPermissionTable:
    def test_writer_permissions(self):
        assert is_permitted(Role.WRITER, TransitionKind.SAVE_DRAFT)
        assert is_permitted(Role.WRITER, TransitionKind.SUBMIT)
        assert not is_permitted(Role.WRITER, TransitionKind.EDIT)
        assert not is_permitted(Role.WRITER, TransitionKind.DELETE)

    def test_admin_cannot_edit_body(self):
        assert not is_permitted(Role.ADMIN, TransitionKind.EDIT)
        assert not is_permitted(Role.ADMIN, TransitionKind.REVIEW)

    def test_only_admin_confirms(self):
        roles = {role for role, kind in PERMISSIONS if kind in (TransitionKind.CONFIRM, TransitionKind.UNCONFIRM)}
        assert roles == {Role.ADMIN}

    def test_every_kind_has_a_rule(self):
        assert set(TRANSITIONS) == set(TransitionKind)


class TestApplyTransition:
    def test_save_draft_keeps_draft(self):
        plan = apply_transition(make_chapter(), TransitionKind.SAVE_DRAFT, WRITER, TransitionPayload(body="hello"), now=NOW)
        assert plan.patch["status"] == "draft"
        assert plan.patch["original_body"] == "hello"
        assert plan.guard == {ChapterStatus.DRAFT, ChapterStatus.SUBMITTED}

    def test_save_draft_accepts_blank_body(self):
        plan = apply_transition(make_chapter(), TransitionKind.SAVE_DRAFT, WRITER, TransitionPayload(body=""), now=NOW)
        assert plan.patch["original_body"] == ""

    def test_save_draft_requires_body(self):
        chapter = make_chapter(original_body="已有正文")
        with pytest.raises(ValidationFailed) as exc_info:
            apply_transition(chapter, TransitionKind.SAVE_DRAFT, WRITER, TransitionPayload(body=None), now=NOW)
        assert exc_info.value.field == "body"

    def test_owner_only_plan_carries_owner(self):
        plan = apply_transition(make_chapter(), TransitionKind.SUBMIT, WRITER, TransitionPayload(body="x"), now=NOW)
        assert plan.owner_id == "writer-a"
        edit = apply_transition(
            make_chapter(ChapterStatus.SUBMITTED, original_body="x"), TransitionKind.EDIT, EDITOR, now=NOW
        )
        assert edit.owner_id is None

    def test_save_draft_from_submitted_withdraws(self):
        chapter = make_chapter(ChapterStatus.SUBMITTED, original_body="hello")
        plan = apply_transition(chapter, TransitionKind.SAVE_DRAFT, WRITER, TransitionPayload(body="hello again"), now=NOW)
        assert plan.post_state == ChapterStatus.DRAFT

    def test_submit_sets_submitted_at(self):
        plan = apply_transition(make_chapter(), TransitionKind.SUBMIT, WRITER, TransitionPayload(body="hello"), now=NOW)
        assert plan.patch["status"] == "submitted"
        assert plan.patch["submitted_at"] == NOW

    def test_submit_rejects_blank_body(self):
        with pytest.raises(ValidationFailed) as exc_info:
            apply_transition(make_chapter(), TransitionKind.SUBMIT, WRITER, TransitionPayload(body="   "), now=NOW)
        assert exc_info.value.field == "body"

    def test_non_owner_writer_is_unauthorized(self):
        with pytest.raises(Unauthorized):
            apply_transition(make_chapter(), TransitionKind.SUBMIT, OTHER_WRITER, TransitionPayload(body="x"), now=NOW)

    def test_permission_checked_before_state(self):
        # 编辑在 draft 状态下保存草稿：权限先失败
        with pytest.raises(Unauthorized):
            apply_transition(make_chapter(), TransitionKind.SAVE_DRAFT, EDITOR, TransitionPayload(body="x"), now=NOW)

    def test_ownership_checked_before_state(self):
        chapter = make_chapter(ChapterStatus.CONFIRMED)
        with pytest.raises(Unauthorized):
            apply_transition(chapter, TransitionKind.SUBMIT, OTHER_WRITER, TransitionPayload(body="x"), now=NOW)

    def test_state_checked_before_validation(self):
        chapter = make_chapter(ChapterStatus.REVIEWED)
        with pytest.raises(GuardFailed):
            apply_transition(chapter, TransitionKind.SUBMIT, WRITER, TransitionPayload(body=""), now=NOW)

    def test_first_edit_copies_original_body(self):
        chapter = make_chapter(ChapterStatus.SUBMITTED, original_body="hello")
        plan = apply_transition(chapter, TransitionKind.EDIT, EDITOR, now=NOW)
        assert plan.patch["edited_body"] == "hello"
        assert plan.patch["edited_by"] == "editor-b"
        assert plan.patch["status"] == "editing"

    def test_edit_without_body_keeps_existing_edit(self):
        chapter = make_chapter(ChapterStatus.EDITING, original_body="hello", edited_body="Hello.")
        plan = apply_transition(chapter, TransitionKind.EDIT, EDITOR, now=NOW)
        assert plan.patch["edited_body"] == "Hello."

    def test_edit_is_idempotent(self):
        chapter = make_chapter(ChapterStatus.SUBMITTED, original_body="hello")
        payload = TransitionPayload(body="Hello.")
        first = apply_transition(chapter, TransitionKind.EDIT, EDITOR, payload, now=NOW)
        apply_patch(chapter, first)
        second = apply_transition(chapter, TransitionKind.EDIT, EDITOR, payload, now=NOW)
        assert first.patch == second.patch

    def test_review_sets_reviewer(self):
        chapter = make_chapter(ChapterStatus.EDITING, original_body="hello", edited_body="Hello.")
        plan = apply_transition(chapter, TransitionKind.REVIEW, EDITOR, now=NOW)
        assert plan.patch["reviewed_by"] == "editor-b"
        assert plan.patch["reviewed_at"] == NOW
        assert plan.patch["status"] == "reviewed"

    def test_review_rejects_blank_body(self):
        chapter = make_chapter(ChapterStatus.SUBMITTED, original_body="")
        with pytest.raises(ValidationFailed):
            apply_transition(chapter, TransitionKind.REVIEW, EDITOR, now=NOW)

    def test_editor_cannot_reopen_reviewed(self):
        chapter = make_chapter(ChapterStatus.REVIEWED, edited_body="Hello.")
        with pytest.raises(GuardFailed):
            apply_transition(chapter, TransitionKind.EDIT, EDITOR, TransitionPayload(body="again"), now=NOW)

    def test_unconfirm_clears_confirmation(self):
        chapter = make_chapter(ChapterStatus.CONFIRMED, confirmed_by="admin-c", confirmed_at=NOW)
        plan = apply_transition(chapter, TransitionKind.UNCONFIRM, ADMIN, now=NOW)
        assert plan.patch["confirmed_by"] is None
        assert plan.patch["confirmed_at"] is None
        assert plan.patch["status"] == "reviewed"

    def test_delete_only_from_draft(self):
        plan = apply_transition(make_chapter(), TransitionKind.DELETE, ADMIN, now=NOW)
        assert plan.removes
        assert plan.guard == {ChapterStatus.DRAFT}
        with pytest.raises(GuardFailed):
            apply_transition(make_chapter(ChapterStatus.SUBMITTED), TransitionKind.DELETE, EDITOR, now=NOW)


class TestUpdateMetadata:
    def test_allowed_in_any_state(self):
        for status in ChapterStatus:
            plan = apply_transition(
                make_chapter(status), TransitionKind.UPDATE_METADATA, EDITOR,
                TransitionPayload(metadata={"title": " 新标题 "}), now=NOW,
            )
            assert plan.patch["title"] == "新标题"
            assert "status" not in plan.patch

    def test_empty_writer_unassigns(self):
        plan = apply_transition(
            make_chapter(), TransitionKind.UPDATE_METADATA, ADMIN,
            TransitionPayload(metadata={"writer_id": ""}), now=NOW,
        )
        assert plan.patch["writer_id"] is None

    @pytest.mark.parametrize("metadata", [
        {},
        {"title": ""},
        {"chapter_code": "  "},
        {"order_number": -1},
        {"order_number": "3"},
        {"status": "confirmed"},
        {"title": 5},
        {"chapter_code": ["3", "1"]},
        {"title": None},
        {"writer_id": ["writer-a"]},
        {"writer_id": 7},
    ])
    def test_invalid_metadata(self, metadata):
        with pytest.raises(ValidationFailed):
            apply_transition(
                make_chapter(), TransitionKind.UPDATE_METADATA, ADMIN,
                TransitionPayload(metadata=metadata), now=NOW,
            )

    def test_writer_cannot_update_metadata(self):
        with pytest.raises(Unauthorized):
            apply_transition(
                make_chapter(), TransitionKind.UPDATE_METADATA, WRITER,
                TransitionPayload(metadata={"title": "x"}), now=NOW,
            )


class TestAvailableTransitions:
    def test_owner_writer_on_draft(self):
        kinds = available_transitions(make_chapter(), WRITER)
        assert kinds == [TransitionKind.SAVE_DRAFT, TransitionKind.SUBMIT]

    def test_other_writer_sees_nothing(self):
        assert available_transitions(make_chapter(), OTHER_WRITER) == []

    def test_admin_on_confirmed(self):
        kinds = available_transitions(make_chapter(ChapterStatus.CONFIRMED), ADMIN)
        assert kinds == [TransitionKind.UNCONFIRM, TransitionKind.UPDATE_METADATA]


class TestFilePolicy:
    def test_owner_editor_admin_allowed_until_confirmed(self):
        for status in (ChapterStatus.DRAFT, ChapterStatus.SUBMITTED, ChapterStatus.REVIEWED):
            for actor in (WRITER, EDITOR, ADMIN):
                can_modify_files(make_chapter(status), actor)

    def test_confirmed_chapter_is_locked(self):
        with pytest.raises(GuardFailed):
            can_modify_files(make_chapter(ChapterStatus.CONFIRMED), ADMIN)

    def test_other_writer_unauthorized(self):
        with pytest.raises(Unauthorized):
            can_modify_files(make_chapter(), OTHER_WRITER)


class TestInvariants:
    def test_full_round_trip_keeps_invariants(self):
        chapter = make_chapter()
        steps = [
            (TransitionKind.SAVE_DRAFT, WRITER, TransitionPayload(body="hello")),
            (TransitionKind.SUBMIT, WRITER, TransitionPayload(body="hello")),
            (TransitionKind.EDIT, EDITOR, TransitionPayload(body="Hello.")),
            (TransitionKind.REVIEW, EDITOR, TransitionPayload()),
            (TransitionKind.CONFIRM, ADMIN, TransitionPayload()),
            (TransitionKind.UNCONFIRM, ADMIN, TransitionPayload()),
            (TransitionKind.CONFIRM, ADMIN, TransitionPayload()),
        ]
        for kind, actor, payload in steps:
            apply_patch(chapter, apply_transition(chapter, kind, actor, payload, now=NOW))
            assert invariant_violations(chapter) == []
        assert chapter.status == "confirmed"

    def test_detects_inconsistent_confirmation(self):
        chapter = make_chapter(ChapterStatus.REVIEWED, reviewed_by="editor-b", reviewed_at=NOW, confirmed_by="admin-c")
        assert len(invariant_violations(chapter)) == 1
