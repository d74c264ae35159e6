"""FieldEventHandler -- check-in / check-out 编排

处理流程（任一步骤失败即 ABORTED，不产生状态变更和 Activity）：
1. 幂等键重放检查
2. 加载任务、校验分配关系与当前状态（check-out 还需本人已 check-in）
3. GPS 距离 / 精度校验（仅告警）
4. 收款对账（仅告警）
5. 附件写入存储协作方
6. 单个 unit of work：认领附件 + 状态流转 + 生命周期时间 + 收款记录 + 现场事件 Activity
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

import aiosqlite
import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from fieldops.core.activity_log import ActivityLog
from fieldops.core.config import FieldEventPolicy
from fieldops.core.exceptions import (
    AttachmentStorageError,
    FieldOpsError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    TaskStatusConflictError,
    ValidationError,
)
from fieldops.core.geo import Coordinates, verify_location
from fieldops.core.models import (
    ActivityAction,
    Actor,
    AttachmentRef,
    AttachmentUpload,
    CheckInRequest,
    CheckOutRequest,
    LocationFix,
    Payment,
    PaymentCollectedPayload,
    StoredAttachment,
    Task,
    TaskCheckedInPayload,
    TaskCheckedOutPayload,
    TaskStatus,
    task_topic,
)
from fieldops.core.reconcile import PaymentReconciliation, reconcile
from fieldops.core.state_machine import TaskStateMachine
from fieldops.core.store import StoreGroup

log = structlog.get_logger()


class FieldEventStage(StrEnum):
    """现场事件处理阶段（仅用于日志观测）"""

    IDLE = "IDLE"
    VALIDATING = "VALIDATING"
    GEO_CHECKED = "GEO_CHECKED"
    ATTACHMENTS_PERSISTED = "ATTACHMENTS_PERSISTED"
    STATUS_TRANSITIONED = "STATUS_TRANSITIONED"
    LOGGED = "LOGGED"
    DONE = "DONE"
    ABORTED = "ABORTED"


@dataclass(frozen=True)
class _FieldEventKind:
    event_type: str
    required_status: TaskStatus
    target_status: TaskStatus
    action: ActivityAction
    lifecycle_column: str
    payload_model: type[BaseModel]


_CHECK_IN = _FieldEventKind(
    event_type="CHECK_IN",
    required_status=TaskStatus.READY,
    target_status=TaskStatus.IN_PROGRESS,
    action=ActivityAction.TASK_CHECKED_IN,
    lifecycle_column="started_at",
    payload_model=TaskCheckedInPayload,
)

_CHECK_OUT = _FieldEventKind(
    event_type="CHECK_OUT",
    required_status=TaskStatus.IN_PROGRESS,
    target_status=TaskStatus.COMPLETED,
    action=ActivityAction.TASK_CHECKED_OUT,
    lifecycle_column="completed_at",
    payload_model=TaskCheckedOutPayload,
)


class FieldEventResult(BaseModel):
    """check-in / check-out 结果"""

    task: Task
    warnings: list[str] = Field(default_factory=list)
    payment: Payment | None = None
    replayed: bool = Field(default=False, description="是否为幂等重放的结果")


class _StageTracker:
    """记录处理阶段流转"""

    def __init__(self, kind: _FieldEventKind, task_id: int, user_id: str) -> None:
        self._kind = kind
        self._task_id = task_id
        self._user_id = user_id
        self.stage = FieldEventStage.IDLE

    def advance(self, stage: FieldEventStage) -> None:
        self.stage = stage
        log.debug(
            "field_event_stage",
            event_type=self._kind.event_type,
            task_id=self._task_id,
            user_id=self._user_id,
            stage=stage.value,
        )

    def abort(self, error: BaseException) -> None:
        failed_at = self.stage
        self.stage = FieldEventStage.ABORTED
        log.info(
            "field_event_aborted",
            event_type=self._kind.event_type,
            task_id=self._task_id,
            user_id=self._user_id,
            failed_at=failed_at.value,
            error_type=type(error).__name__,
            error=str(error),
        )


class FieldEventHandler:
    """check-in / check-out 处理器"""

    def __init__(
        self,
        store_group: StoreGroup,
        policy: FieldEventPolicy | None = None,
    ) -> None:
        self._stores = store_group
        self._policy = policy or FieldEventPolicy()
        self._activity_log = ActivityLog(store_group.activity_store)
        self._state_machine = TaskStateMachine(store_group.task_store, self._activity_log)

    async def check_in(
        self,
        task_id: int,
        actor: Actor,
        request: CheckInRequest,
        *,
        idempotency_key: str | None = None,
    ) -> FieldEventResult:
        """READY -> IN_PROGRESS"""
        return await self._handle(_CHECK_IN, task_id, actor, request, idempotency_key)

    async def check_out(
        self,
        task_id: int,
        actor: Actor,
        request: CheckOutRequest,
        *,
        idempotency_key: str | None = None,
    ) -> FieldEventResult:
        """IN_PROGRESS -> COMPLETED，可同时记录收款"""
        return await self._handle(_CHECK_OUT, task_id, actor, request, idempotency_key)

    async def _handle(
        self,
        kind: _FieldEventKind,
        task_id: int,
        actor: Actor,
        request: CheckInRequest,
        idempotency_key: str | None,
    ) -> FieldEventResult:
        tracker = _StageTracker(kind, task_id, actor.user_id)
        tracker.advance(FieldEventStage.VALIDATING)
        try:
            if idempotency_key:
                replayed = await self._replay(kind, task_id, actor, idempotency_key)
                if replayed is not None:
                    tracker.advance(FieldEventStage.DONE)
                    return replayed
            result = await self._process(kind, task_id, actor, request, idempotency_key, tracker)
        except (TaskStatusConflictError, aiosqlite.IntegrityError) as e:
            # 同一幂等键的并发重试：落败方返回胜出方已记录的结果
            if idempotency_key:
                replayed = await self._replay(kind, task_id, actor, idempotency_key)
                if replayed is not None:
                    tracker.advance(FieldEventStage.DONE)
                    return replayed
            tracker.abort(e)
            raise
        except (FieldOpsError, aiosqlite.Error) as e:
            tracker.abort(e)
            raise

        tracker.advance(FieldEventStage.DONE)
        log.info(
            "field_event_completed",
            event_type=kind.event_type,
            task_id=task_id,
            user_id=actor.user_id,
            warning_count=len(result.warnings),
            payment_collected=result.payment is not None,
        )
        return result

    async def _process(
        self,
        kind: _FieldEventKind,
        task_id: int,
        actor: Actor,
        request: CheckInRequest,
        idempotency_key: str | None,
        tracker: _StageTracker,
    ) -> FieldEventResult:
        topic = task_topic(task_id)
        task = await self._load_task(kind, task_id, actor)
        location_fix = LocationFix(
            lat=request.latitude,
            lng=request.longitude,
            accuracy=request.accuracy,
        )
        # 角色 / 流转合法性在任何写入之前确认
        self._state_machine.check(task, actor, kind.target_status, location_fix)

        reference = (
            Coordinates(lat=task.geo_location.lat, lng=task.geo_location.lng)
            if task.geo_location is not None
            else None
        )
        geo = verify_location(
            Coordinates(lat=request.latitude, lng=request.longitude),
            reference,
            request.accuracy,
            distance_threshold_m=self._policy.distance_warning_m,
            accuracy_threshold_m=self._policy.accuracy_warning_m,
        )
        warnings = list(geo.warnings)
        tracker.advance(FieldEventStage.GEO_CHECKED)

        collecting = isinstance(request, CheckOutRequest) and request.payment_collected
        reconciliation: PaymentReconciliation | None = None
        if collecting:
            reconciliation = reconcile(
                task.expected_revenue,
                request.payment_amount,
                ratio=self._policy.payment_mismatch_ratio,
            )
            if reconciliation.warning:
                warnings.append(reconciliation.warning)
                log.warning(
                    "payment_mismatch",
                    task_id=task_id,
                    expected_revenue=str(task.expected_revenue),
                    collected=str(request.payment_amount),
                    difference_abs=str(reconciliation.difference_abs),
                )

        now = datetime.now(UTC)
        stored = [
            await self._store_file(upload, task_id, actor, now) for upload in request.files
        ]
        invoice: StoredAttachment | None = None
        if collecting and request.invoice_file is not None:
            invoice = await self._store_file(request.invoice_file, task_id, actor, now)
        tracker.advance(FieldEventStage.ATTACHMENTS_PERSISTED)

        payment: Payment | None = None
        async with self._stores.transaction():
            attachment_ids = [item.attachment_id for item in stored]
            if invoice is not None:
                attachment_ids.append(invoice.attachment_id)
            claimed = await self._stores.attachment_storage.claim(attachment_ids)
            if claimed != len(attachment_ids):
                raise AttachmentStorageError(
                    f"Only {claimed} of {len(attachment_ids)} stored attachments could be claimed"
                )

            updated = await self._state_machine.transition(
                task,
                actor,
                kind.target_status,
                location_fix=location_fix,
                now=now,
            )
            tracker.advance(FieldEventStage.STATUS_TRANSITIONED)

            await self._stores.task_store.set_lifecycle_timestamp(
                task_id, kind.lifecycle_column, now
            )
            updated = updated.model_copy(update={kind.lifecycle_column: now})

            if collecting:
                payment = Payment(
                    payment_id=str(ULID()),
                    task_id=task_id,
                    amount=request.payment_amount,
                    collected_by=actor.user_id,
                    collected_at=now,
                    invoice_attachment_id=invoice.attachment_id if invoice else None,
                    notes=request.payment_notes,
                )
                await self._stores.payment_store.create_payment(payment)
                await self._activity_log.record(
                    topic,
                    ActivityAction.PAYMENT_COLLECTED,
                    PaymentCollectedPayload(
                        payment_id=payment.payment_id,
                        amount=payment.amount,
                        currency=payment.currency,
                        has_invoice=invoice is not None,
                        invoice_attachment_id=payment.invoice_attachment_id,
                        notes=payment.notes,
                        expected_revenue=task.expected_revenue,
                        mismatch=reconciliation.mismatch,
                        difference_abs=(
                            reconciliation.difference_abs
                            if task.expected_revenue is not None
                            else None
                        ),
                    ),
                    user_id=actor.user_id,
                    created_at=now,
                )

            await self._activity_log.record(
                topic,
                kind.action,
                kind.payload_model(
                    location=location_fix,
                    distance_from_task=geo.distance_meters,
                    notes=request.notes,
                    warnings=warnings,
                    attachments=[
                        AttachmentRef(
                            id=item.attachment_id,
                            mime_type=item.attachment.mime_type,
                            original_filename=item.attachment.original_filename,
                        )
                        for item in stored
                    ],
                    payment_collected=collecting,
                ),
                user_id=actor.user_id,
                idempotency_key=idempotency_key,
                created_at=now,
            )
            tracker.advance(FieldEventStage.LOGGED)

        return FieldEventResult(task=updated, warnings=warnings, payment=payment)

    async def _load_task(self, kind: _FieldEventKind, task_id: int, actor: Actor) -> Task:
        """加载任务并校验前置条件（只读）"""
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        if not task.is_assigned(actor.user_id):
            raise ForbiddenError(f"You are not assigned to task {task_id}")
        if task.status != kind.required_status:
            raise InvalidStateError(
                f"Task {task_id} is {task.status}; {kind.event_type.lower().replace('_', '-')} "
                f"requires {kind.required_status}"
            )
        if kind is _CHECK_OUT:
            checked_in = await self._activity_log.find_first(
                task_topic(task_id),
                ActivityAction.TASK_CHECKED_IN,
                actor.user_id,
            )
            if checked_in is None:
                raise InvalidStateError(
                    f"You must check in to task {task_id} before checking out"
                )
        return task

    async def _store_file(
        self,
        upload: AttachmentUpload,
        task_id: int,
        actor: Actor,
        now: datetime,
    ) -> StoredAttachment:
        """写入单个附件；任何存储失败都转换为 AttachmentStorageError"""
        try:
            async with self._stores.transaction():
                return await self._stores.attachment_storage.store(
                    upload,
                    task_id=task_id,
                    uploaded_by=actor.user_id,
                    now=now,
                )
        except (OSError, aiosqlite.Error) as e:
            log.warning(
                "attachment_store_failed",
                task_id=task_id,
                filename=upload.filename,
                error=str(e),
            )
            raise AttachmentStorageError(
                f"Failed to store attachment {upload.filename or '<unnamed>'}"
            ) from e

    async def _replay(
        self,
        kind: _FieldEventKind,
        task_id: int,
        actor: Actor,
        idempotency_key: str,
    ) -> FieldEventResult | None:
        """按幂等键查找已记录的结果，未找到返回 None"""
        activity = await self._activity_log.find_by_idempotency_key(idempotency_key)
        if activity is None:
            return None
        if (
            activity.topic != task_topic(task_id)
            or activity.action != kind.action
            or activity.user_id != actor.user_id
        ):
            raise ValidationError(
                f"Idempotency-Key {idempotency_key} was already used for a different request",
                code="IDEMPOTENCY_KEY_REUSED",
            )

        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        payment: Payment | None = None
        if activity.payload.get("payment_collected"):
            payments = await self._stores.payment_store.list_for_task(task_id)
            payment = payments[0] if payments else None

        log.info(
            "field_event_replayed",
            event_type=kind.event_type,
            task_id=task_id,
            activity_id=activity.activity_id,
        )
        return FieldEventResult(
            task=task,
            warnings=activity.payload.get("warnings", []),
            payment=payment,
            replayed=True,
        )
