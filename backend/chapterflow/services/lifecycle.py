"""
章节生命周期引擎

纯决策逻辑：给定当前章节状态、请求的流转和操作者，判断流转是否合法，
并给出条件写入所需的守卫状态集合与要写入的字段。不访问任何存储。

状态: draft → submitted → editing → reviewed → confirmed
回退: submitted → draft（作者重新保存）, confirmed → reviewed（管理员取消确认）
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from chapterflow.exceptions import GuardFailed, Unauthorized, ValidationFailed
from chapterflow.models.enums import ChapterStatus, Role


class TransitionKind(str, Enum):
    """可请求的流转类型"""
    SAVE_DRAFT = "save_draft"
    SUBMIT = "submit"
    EDIT = "edit"
    REVIEW = "review"
    CONFIRM = "confirm"
    UNCONFIRM = "unconfirm"
    UPDATE_METADATA = "update_metadata"
    DELETE = "delete"


@dataclass(frozen=True)
class Actor:
    """发起请求的参与者（身份 + 角色），每次请求由外部认证服务提供"""
    user_id: str
    role: Role
    name: str = ""


@dataclass(frozen=True)
class TransitionRule:
    """流转规则：允许的前置状态、目标状态及附加约束"""
    pre_states: FrozenSet[ChapterStatus]
    post_state: Optional[ChapterStatus]
    owner_only: bool = False
    requires_body: bool = False


@dataclass
class TransitionPayload:
    """流转携带的数据：正文或元数据"""
    body: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TransitionPlan:
    """引擎的决策结果：条件写入的守卫集合与补丁"""
    kind: TransitionKind
    guard: FrozenSet[ChapterStatus]
    patch: Dict[str, Any]
    post_state: Optional[ChapterStatus]
    owner_id: Optional[str] = None  # 仅作者可操作的流转，写入时还需作者未变

    @property
    def removes(self) -> bool:
        return self.kind == TransitionKind.DELETE

    @property
    def guard_values(self) -> List[str]:
        return sorted(s.value for s in self.guard)


ALL_STATUSES: FrozenSet[ChapterStatus] = frozenset(ChapterStatus)

# 元数据流转允许修改的字段
METADATA_FIELDS = ("writer_id", "order_number", "chapter_code", "title")

TRANSITIONS: Dict[TransitionKind, TransitionRule] = {
    TransitionKind.SAVE_DRAFT: TransitionRule(
        pre_states=frozenset({ChapterStatus.DRAFT, ChapterStatus.SUBMITTED}),
        post_state=ChapterStatus.DRAFT,
        owner_only=True,
    ),
    TransitionKind.SUBMIT: TransitionRule(
        pre_states=frozenset({ChapterStatus.DRAFT, ChapterStatus.SUBMITTED}),
        post_state=ChapterStatus.SUBMITTED,
        owner_only=True,
        requires_body=True,
    ),
    TransitionKind.EDIT: TransitionRule(
        pre_states=frozenset({ChapterStatus.SUBMITTED, ChapterStatus.EDITING}),
        post_state=ChapterStatus.EDITING,
    ),
    TransitionKind.REVIEW: TransitionRule(
        pre_states=frozenset({ChapterStatus.SUBMITTED, ChapterStatus.EDITING}),
        post_state=ChapterStatus.REVIEWED,
        requires_body=True,
    ),
    TransitionKind.CONFIRM: TransitionRule(
        pre_states=frozenset({ChapterStatus.REVIEWED}),
        post_state=ChapterStatus.CONFIRMED,
    ),
    TransitionKind.UNCONFIRM: TransitionRule(
        pre_states=frozenset({ChapterStatus.CONFIRMED}),
        post_state=ChapterStatus.REVIEWED,
    ),
    TransitionKind.UPDATE_METADATA: TransitionRule(
        pre_states=ALL_STATUSES,
        post_state=None,
    ),
    TransitionKind.DELETE: TransitionRule(
        pre_states=frozenset({ChapterStatus.DRAFT}),
        post_state=None,
    ),
}

# 权限表：(角色, 流转) 组合，只在引擎内部查询一次
PERMISSIONS: FrozenSet[Tuple[Role, TransitionKind]] = frozenset({
    (Role.WRITER, TransitionKind.SAVE_DRAFT),
    (Role.WRITER, TransitionKind.SUBMIT),
    (Role.EDITOR, TransitionKind.EDIT),
    (Role.EDITOR, TransitionKind.REVIEW),
    (Role.ADMIN, TransitionKind.CONFIRM),
    (Role.ADMIN, TransitionKind.UNCONFIRM),
    (Role.ADMIN, TransitionKind.UPDATE_METADATA),
    (Role.EDITOR, TransitionKind.UPDATE_METADATA),
    (Role.ADMIN, TransitionKind.DELETE),
    (Role.EDITOR, TransitionKind.DELETE),
})

# 确认后附件不可再增删
FILE_LOCKED_STATUSES: FrozenSet[ChapterStatus] = frozenset({ChapterStatus.CONFIRMED})


def is_permitted(role: Role, kind: TransitionKind) -> bool:
    return (role, kind) in PERMISSIONS


def _is_blank(text: Optional[str]) -> bool:
    return text is None or not text.strip()


def _current_status(current: Any) -> ChapterStatus:
    return ChapterStatus(current.status)


def _authorize(current: Any, kind: TransitionKind, actor: Actor) -> None:
    if not is_permitted(actor.role, kind):
        raise Unauthorized(
            f"角色 {actor.role.value} 无权执行 {kind.value}",
            {"role": actor.role.value, "kind": kind.value},
        )
    if TRANSITIONS[kind].owner_only and current.writer_id != actor.user_id:
        raise Unauthorized("只能操作分配给自己的章节", {"kind": kind.value})


def _check_pre_state(current: Any, kind: TransitionKind) -> ChapterStatus:
    status = _current_status(current)
    rule = TRANSITIONS[kind]
    if status not in rule.pre_states:
        raise GuardFailed(
            f"当前状态 {status.value} 不允许执行 {kind.value}",
            {"status": status.value, "expected": sorted(s.value for s in rule.pre_states)},
        )
    return status


def _edit_base(current: Any, body: Optional[str]) -> str:
    """编辑正文：未提供时沿用已有校对稿，首次校对则复制原稿"""
    if body is not None:
        return body
    if current.edited_body is not None:
        return current.edited_body
    return current.original_body or ""


def _metadata_patch(metadata: Dict[str, Any]) -> Dict[str, Any]:
    if not metadata:
        raise ValidationFailed("没有需要更新的字段")

    unknown = set(metadata) - set(METADATA_FIELDS)
    if unknown:
        raise ValidationFailed(f"不允许修改的字段: {', '.join(sorted(unknown))}", field=sorted(unknown)[0])

    patch: Dict[str, Any] = {}
    for name in ("chapter_code", "title"):
        if name in metadata:
            value = metadata[name]
            if not isinstance(value, str) or _is_blank(value):
                raise ValidationFailed("编号和标题不能为空", field=name)
            patch[name] = value.strip()

    if "order_number" in metadata:
        order_number = metadata["order_number"]
        if not isinstance(order_number, int) or isinstance(order_number, bool) or order_number < 0:
            raise ValidationFailed("排序序号必须是非负整数", field="order_number")
        patch["order_number"] = order_number

    if "writer_id" in metadata:
        writer_id = metadata["writer_id"]
        if writer_id is not None and not isinstance(writer_id, str):
            raise ValidationFailed("作者ID必须是字符串", field="writer_id")
        # 空字符串视为取消分配
        patch["writer_id"] = writer_id or None

    return patch


def apply_transition(
    current: Any,
    kind: TransitionKind,
    actor: Actor,
    payload: Optional[TransitionPayload] = None,
    now: Optional[datetime] = None,
) -> TransitionPlan:
    """
    计算一次流转的条件写入

    检查顺序：权限表 → 归属 → 前置状态 → 数据校验，第一个失败的检查决定拒绝原因。

    Args:
        current: 当前章节（需要 status / writer_id / original_body / edited_body 属性）
        kind: 请求的流转类型
        actor: 操作者
        payload: 正文或元数据
        now: 写入时间戳，默认当前时间

    Returns:
        TransitionPlan，其中 guard 是存储中必须仍然成立的状态集合

    Raises:
        Unauthorized / GuardFailed / ValidationFailed
    """
    payload = payload or TransitionPayload()
    now = now or datetime.now()
    rule = TRANSITIONS[kind]

    _authorize(current, kind, actor)
    _check_pre_state(current, kind)

    patch: Dict[str, Any] = {}

    if kind == TransitionKind.SAVE_DRAFT:
        if payload.body is None:
            raise ValidationFailed("缺少正文", field="body")
        patch = {"original_body": payload.body, "updated_at": now}

    elif kind == TransitionKind.SUBMIT:
        if _is_blank(payload.body):
            raise ValidationFailed("提交的正文不能为空", field="body")
        patch = {"original_body": payload.body, "submitted_at": now, "updated_at": now}

    elif kind in (TransitionKind.EDIT, TransitionKind.REVIEW):
        edited_body = _edit_base(current, payload.body)
        if rule.requires_body and _is_blank(edited_body):
            raise ValidationFailed("校对完成的正文不能为空", field="body")
        patch = {
            "edited_body": edited_body,
            "edited_by": actor.user_id,
            "edited_at": now,
            "updated_at": now,
        }
        if kind == TransitionKind.REVIEW:
            patch["reviewed_by"] = actor.user_id
            patch["reviewed_at"] = now

    elif kind == TransitionKind.CONFIRM:
        patch = {"confirmed_by": actor.user_id, "confirmed_at": now, "updated_at": now}

    elif kind == TransitionKind.UNCONFIRM:
        patch = {"confirmed_by": None, "confirmed_at": None, "updated_at": now}

    elif kind == TransitionKind.UPDATE_METADATA:
        patch = _metadata_patch(payload.metadata)
        patch["updated_at"] = now

    if rule.post_state is not None:
        patch["status"] = rule.post_state.value

    return TransitionPlan(
        kind=kind,
        guard=rule.pre_states,
        patch=patch,
        post_state=rule.post_state,
        owner_id=actor.user_id if rule.owner_only else None,
    )


def available_transitions(current: Any, actor: Actor) -> List[TransitionKind]:
    """列出操作者在当前状态下可以发起的流转（不做正文校验）"""
    available = []
    for kind in TransitionKind:
        try:
            _authorize(current, kind, actor)
            _check_pre_state(current, kind)
        except (Unauthorized, GuardFailed):
            continue
        available.append(kind)
    return available


def can_modify_files(current: Any, actor: Actor) -> None:
    """
    附件增删的策略检查：章节作者、编辑、管理员在确认前均可操作

    Raises:
        Unauthorized / GuardFailed
    """
    if actor.role == Role.WRITER and current.writer_id != actor.user_id:
        raise Unauthorized("只能管理自己章节的附件")
    status = _current_status(current)
    if status in FILE_LOCKED_STATUSES:
        raise GuardFailed("章节已确认，附件不可修改", {"status": status.value})


def invariant_violations(current: Any) -> List[str]:
    """检查流转记录字段与状态的一致性，返回违反的规则说明"""
    status = _current_status(current)
    violations = []

    if current.edited_by is not None and status not in (
        ChapterStatus.EDITING, ChapterStatus.REVIEWED, ChapterStatus.CONFIRMED
    ):
        violations.append(f"edited_by 不应在 {status.value} 状态下存在")

    reviewed_expected = status in (ChapterStatus.REVIEWED, ChapterStatus.CONFIRMED)
    if (current.reviewed_at is not None) != reviewed_expected or (current.reviewed_by is not None) != reviewed_expected:
        violations.append(f"reviewed_by/reviewed_at 与状态 {status.value} 不一致")

    confirmed_expected = status == ChapterStatus.CONFIRMED
    if (current.confirmed_at is not None) != confirmed_expected or (current.confirmed_by is not None) != confirmed_expected:
        violations.append(f"confirmed_by/confirmed_at 与状态 {status.value} 不一致")

    return violations
