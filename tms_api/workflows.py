"""
Configurable business workflows.

A workflow is an ordered list of steps. Executing it walks the steps in
``step_number`` order: ordinary steps complete at once, an APPROVAL step opens
an approval request and parks the execution in WAITING until someone decides.
Approving resumes the walk with the steps after the approval; rejecting fails
the execution.
"""

import logging
import random
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from tms_api import events
from tms_api.crud import apply, get_owned, iso, paginate, scoped, to_dict
from tms_api.db import SessionLocal, utcnow
from tms_api.deps import TenantContext, get_context
from tms_api.errors import BadRequest, Forbidden, NotFound
from tms_api.models import ApprovalRequest, StepExecution, Workflow, WorkflowExecution, WorkflowStep
from tms_api.schemas import (
    ApprovalDecisionIn,
    CancelExecutionIn,
    DelegateApprovalIn,
    ExecuteWorkflowIn,
    RejectApprovalIn,
    RetryExecutionIn,
    WorkflowIn,
    WorkflowStepIn,
    WorkflowUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["workflows"])

CANCELLABLE = ("PENDING", "RUNNING", "WAITING")
RETRYABLE = ("FAILED", "CANCELLED")

Pending = List[Tuple[str, Dict[str, Any]]]


# ---------- Definitions ----------

def workflow_dict(w: Workflow) -> dict:
    out = to_dict(w)
    out["steps"] = [to_dict(st) for st in w.steps]
    return out


def _get_workflow(s: Session, ctx: TenantContext, workflow_id: int) -> Workflow:
    return get_owned(s, Workflow, ctx, workflow_id, "Workflow")


def _step_row(ctx: TenantContext, workflow_id: int, step: WorkflowStepIn) -> WorkflowStep:
    return WorkflowStep(
        tenant_id=ctx.tenant_id,
        workflow_id=workflow_id,
        step_number=step.step_number,
        step_name=step.step_name or f"Step {step.step_number}",
        step_type=step.step_type,
        action_config=step.action_config,
        condition_logic=step.condition_logic,
        timeout_seconds=step.timeout_seconds or 3600,
        retry_config=step.retry_config,
    )


def validate_definition(payload) -> dict:
    issues = []
    steps = payload.steps or []
    if not payload.name or not payload.trigger_type:
        issues.append("Name and trigger type are required")
    if not steps:
        issues.append("At least one step is required")
    seen = set()
    for step in steps:
        if step.step_number in seen:
            issues.append(f"Duplicate step number {step.step_number}")
        seen.add(step.step_number)
    if payload.trigger_type == "EVENT" and not payload.trigger_event:
        issues.append("Event triggers require triggerEvent")
    return {"valid": not issues, "issues": issues}


def create_workflow(s: Session, ctx: TenantContext, payload: WorkflowIn) -> Workflow:
    w = Workflow(
        tenant_id=ctx.tenant_id,
        name=payload.name,
        description=payload.description,
        trigger_type=payload.trigger_type,
        trigger_event=payload.trigger_event,
        trigger_conditions=payload.trigger_conditions,
        status=payload.status or "ACTIVE",
        version=1,
        created_by_id=ctx.user_id,
        updated_by_id=ctx.user_id,
    )
    s.add(w)
    s.flush()
    s.add_all([_step_row(ctx, w.id, st) for st in payload.steps])
    s.commit()
    s.refresh(w)
    return w


def list_workflows(s: Session, ctx: TenantContext, status: Optional[str] = None, trigger_type: Optional[str] = None,
                   search: Optional[str] = None, page: int = 1, limit: int = 20) -> dict:
    stmt = scoped(Workflow, ctx)
    if status:
        stmt = stmt.where(Workflow.status == status)
    if trigger_type:
        stmt = stmt.where(Workflow.trigger_type == trigger_type)
    if search:
        like = f"%{search}%"
        stmt = stmt.where(or_(Workflow.name.ilike(like), Workflow.description.ilike(like)))
    stmt = stmt.order_by(func.coalesce(Workflow.updated_at, Workflow.created_at).desc(), Workflow.id.desc())
    rows, total, pages = paginate(s, stmt, page, limit)
    return {"data": [workflow_dict(w) for w in rows], "total": total, "page": page, "limit": limit,
            "totalPages": pages}


def update_workflow(s: Session, ctx: TenantContext, workflow_id: int, payload: WorkflowUpdate) -> Workflow:
    """Apply changes, replace the steps when given and bump the version."""
    w = _get_workflow(s, ctx, workflow_id)
    data = payload.model_dump(exclude_unset=True, exclude={"steps"})
    apply(w, {k: v for k, v in data.items() if v is not None})
    if payload.steps is not None:
        s.execute(update(WorkflowStep)
                  .where(WorkflowStep.workflow_id == w.id, WorkflowStep.deleted_at.is_(None))
                  .values(deleted_at=utcnow()))
        s.add_all([_step_row(ctx, w.id, st) for st in payload.steps])
    w.version = (w.version or 1) + 1
    w.updated_by_id = ctx.user_id
    s.commit()
    s.refresh(w)
    return w


def delete_workflow(s: Session, ctx: TenantContext, workflow_id: int) -> dict:
    w = _get_workflow(s, ctx, workflow_id)
    w.deleted_at = utcnow()
    w.status = "INACTIVE"
    s.commit()
    return {"success": True}


def set_workflow_status(s: Session, ctx: TenantContext, workflow_id: int, status: str) -> Workflow:
    w = _get_workflow(s, ctx, workflow_id)
    w.status = status
    w.updated_by_id = ctx.user_id
    s.commit()
    return w


def workflow_stats(s: Session, ctx: TenantContext, workflow_id: int) -> dict:
    _get_workflow(s, ctx, workflow_id)
    totals = dict(s.execute(
        select(WorkflowExecution.status, func.count(WorkflowExecution.id))
        .where(WorkflowExecution.tenant_id == ctx.tenant_id, WorkflowExecution.workflow_id == workflow_id)
        .group_by(WorkflowExecution.status)
    ).all())
    last = s.scalar(select(func.max(WorkflowExecution.completed_at)).where(
        WorkflowExecution.tenant_id == ctx.tenant_id, WorkflowExecution.workflow_id == workflow_id))
    return {"workflowId": workflow_id, "totals": totals, "lastExecutedAt": iso(last)}


# ---------- Execution engine ----------

def new_request_number() -> str:
    return f"APR-{utcnow():%Y%m%d}-{random.randint(0, 9999):04d}"


def _emit_all(pending: Pending) -> None:
    for name, payload in pending:
        events.emit(name, payload)


def _open_approval(s: Session, ctx: TenantContext, execution: WorkflowExecution, step: WorkflowStep,
                   step_exec: StepExecution) -> ApprovalRequest:
    approvers = execution.trigger_data.get("approverIds") or [ctx.user_id]
    req = ApprovalRequest(
        tenant_id=ctx.tenant_id,
        request_number=new_request_number(),
        title=step.step_name or "Approval Required",
        description=step.condition_logic,
        approval_type="SINGLE",
        entity_type="workflow-execution",
        entity_id=str(execution.id),
        approver_ids=list(approvers),
        status="PENDING",
        custom_fields={
            "workflowExecutionId": execution.id,
            "workflowStepId": step.id,
            "stepExecutionId": step_exec.id,
        },
        created_by_id=ctx.user_id,
    )
    s.add(req)
    s.flush()
    return req


def run_steps(s: Session, ctx: TenantContext, execution: WorkflowExecution, steps: List[WorkflowStep],
              pending: Pending) -> None:
    """Walk ``steps`` in order until an approval parks the execution or every step is done."""
    execution.status = "RUNNING"
    existing = {se.workflow_step_id: se for se in execution.step_executions}
    variables = execution.trigger_data.get("variables") or {}

    for step in steps:
        now = utcnow()
        se = existing.get(step.id)
        if se is None:
            se = StepExecution(tenant_id=ctx.tenant_id, workflow_step_id=step.id, workflow_step=step)
            execution.step_executions.append(se)
        se.status = "RUNNING"
        se.input_data = variables
        se.error_message = None
        se.started_at = now
        se.completed_at = None
        s.flush()

        if step.step_type == "APPROVAL":
            req = _open_approval(s, ctx, execution, step, se)
            se.status = "PENDING"
            se.output_data = {"approvalRequestId": req.id}
            execution.status = "WAITING"
            logger.info("execution %s waiting on approval %s", execution.id, req.request_number)
            return

        se.status = "COMPLETED"
        se.completed_at = now
        se.output_data = {"message": "Step completed"}
        pending.append(("workflow.step.completed", {"stepId": se.id, "executionId": execution.id}))

    execution.status = "COMPLETED"
    execution.completed_at = utcnow()
    execution.result = {"message": "Execution completed"}
    pending.append(("workflow.completed", {"executionId": execution.id, "workflowId": execution.workflow_id}))


def execute_workflow(s: Session, ctx: TenantContext, workflow_id: int, payload: ExecuteWorkflowIn) -> dict:
    w = _get_workflow(s, ctx, workflow_id)
    if w.status == "INACTIVE":
        raise BadRequest("Workflow is inactive")

    trigger = dict(payload.trigger_data)
    trigger.update(entityType=payload.entity_type, entityId=payload.entity_id,
                   variables=payload.variables, approverIds=payload.approver_ids)
    execution = WorkflowExecution(tenant_id=ctx.tenant_id, workflow_id=w.id, trigger_data=trigger,
                                  status="RUNNING", started_at=utcnow(), created_by_id=ctx.user_id)
    s.add(execution)
    s.flush()
    pending: Pending = [("workflow.started", {"executionId": execution.id, "workflowId": w.id})]
    run_steps(s, ctx, execution, list(w.steps), pending)
    s.commit()
    _emit_all(pending)
    return {"executionId": execution.id, "status": execution.status}


# ---------- Executions ----------

def step_execution_dict(se: StepExecution) -> dict:
    out = to_dict(se)
    out["step_number"] = se.workflow_step.step_number if se.workflow_step else 0
    out["step_name"] = se.workflow_step.step_name if se.workflow_step else None
    out["step_type"] = se.workflow_step.step_type if se.workflow_step else None
    return out


def execution_dict(e: WorkflowExecution) -> dict:
    out = to_dict(e)
    out["steps"] = [step_execution_dict(se) for se in e.step_executions]
    return out


def _get_execution(s: Session, ctx: TenantContext, execution_id: int) -> WorkflowExecution:
    e = s.scalars(scoped(WorkflowExecution, ctx).where(WorkflowExecution.id == execution_id)).first()
    if e is None:
        raise NotFound("Execution not found")
    return e


def list_executions(s: Session, ctx: TenantContext, workflow_id: Optional[int] = None,
                    status: Optional[str] = None, page: int = 1, limit: int = 20) -> dict:
    stmt = scoped(WorkflowExecution, ctx)
    if workflow_id:
        stmt = stmt.where(WorkflowExecution.workflow_id == workflow_id)
    if status:
        stmt = stmt.where(WorkflowExecution.status == status)
    stmt = stmt.order_by(WorkflowExecution.created_at.desc(), WorkflowExecution.id.desc())
    rows, total, pages = paginate(s, stmt, page, limit)
    return {"data": [execution_dict(e) for e in rows], "total": total, "page": page, "limit": limit,
            "totalPages": pages}


def _close_open_approvals(s: Session, ctx: TenantContext, e: WorkflowExecution, note: str) -> None:
    """Cancel approvals still pending for ``e`` so they can no longer resume it."""
    open_reqs = s.scalars(scoped(ApprovalRequest, ctx).where(
        ApprovalRequest.entity_type == "workflow-execution",
        ApprovalRequest.entity_id == str(e.id),
        ApprovalRequest.status == "PENDING",
    )).all()
    now = utcnow()
    for req in open_reqs:
        req.status = "CANCELLED"
        req.decided_at = now
        req.comments = _combine(req.comments, note)
    if open_reqs:
        logger.info("closed %d open approvals for execution %s", len(open_reqs), e.id)


def cancel_execution(s: Session, ctx: TenantContext, execution_id: int, reason: Optional[str] = None):
    e = _get_execution(s, ctx, execution_id)
    if e.status not in CANCELLABLE:
        raise BadRequest("Execution cannot be cancelled")
    e.status = "CANCELLED"
    e.completed_at = utcnow()
    e.error_message = reason or "Cancelled"
    _close_open_approvals(s, ctx, e, "Execution cancelled")
    s.commit()
    events.emit("workflow.failed", {"executionId": e.id, "error": reason})
    return e


def retry_execution(s: Session, ctx: TenantContext, execution_id: int, from_step: Optional[int] = None) -> dict:
    """Re-run a failed or cancelled execution in place from ``from_step`` (default the first step)."""
    e = _get_execution(s, ctx, execution_id)
    if e.status not in RETRYABLE:
        raise BadRequest("Only failed or cancelled executions can be retried")
    w = s.get(Workflow, e.workflow_id)
    if w is None or w.deleted_at is not None:
        raise NotFound("Workflow missing for execution")

    start = from_step or 1
    steps = [st for st in w.steps if st.step_number >= start]
    rerun = {st.id for st in steps}
    for se in e.step_executions:
        if se.workflow_step_id in rerun:
            se.status = "PENDING"
            se.retry_count = (se.retry_count or 0) + 1
            se.output_data = {}
    e.started_at = utcnow()
    e.completed_at = None
    e.error_message = None
    e.result = {}
    _close_open_approvals(s, ctx, e, "Execution retried")
    pending: Pending = [("workflow.started", {"executionId": e.id, "workflowId": w.id})]
    run_steps(s, ctx, e, steps, pending)
    s.commit()
    _emit_all(pending)
    return {"executionId": e.id, "status": e.status}


def execution_logs(s: Session, ctx: TenantContext, execution_id: int) -> List[dict]:
    e = _get_execution(s, ctx, execution_id)
    return [{k: d[k] for k in ("step_number", "step_name", "status", "started_at", "completed_at",
                               "error_message", "retry_count")}
            for d in (step_execution_dict(se) for se in e.step_executions)]


# ---------- Approvals ----------

def _combine(existing: Optional[str], nxt: Optional[str]) -> Optional[str]:
    if not nxt:
        return existing
    if not existing:
        return nxt
    return f"{existing}\n{nxt}"


def _get_approval(s: Session, ctx: TenantContext, approval_id: int) -> ApprovalRequest:
    req = s.scalars(scoped(ApprovalRequest, ctx).where(ApprovalRequest.id == approval_id)).first()
    if req is None:
        raise NotFound("Approval request not found")
    return req


def _approver(req: ApprovalRequest, user_id: str) -> None:
    if user_id not in (req.approver_ids or []):
        raise Forbidden("User is not an approver")


def list_approvals(s: Session, ctx: TenantContext, status: Optional[str] = None,
                   entity_type: Optional[str] = None, entity_id: Optional[str] = None,
                   page: int = 1, limit: int = 20) -> dict:
    stmt = scoped(ApprovalRequest, ctx)
    if status:
        stmt = stmt.where(ApprovalRequest.status == status)
    if entity_type:
        stmt = stmt.where(ApprovalRequest.entity_type == entity_type)
    if entity_id:
        stmt = stmt.where(ApprovalRequest.entity_id == entity_id)
    rows, total, pages = paginate(s, stmt.order_by(ApprovalRequest.created_at.desc(), ApprovalRequest.id.desc()),
                                  page, limit)
    return {"data": [to_dict(r) for r in rows], "total": total, "page": page, "limit": limit, "totalPages": pages}


def pending_for_user(s: Session, ctx: TenantContext, page: int = 1, limit: int = 20) -> dict:
    # approver_ids is a JSON list; membership is checked here rather than in SQL
    rows = s.scalars(scoped(ApprovalRequest, ctx).where(ApprovalRequest.status == "PENDING")
                     .order_by(ApprovalRequest.created_at.desc(), ApprovalRequest.id.desc())).all()
    mine = [r for r in rows if ctx.user_id in (r.approver_ids or [])]
    start = (page - 1) * limit
    total = len(mine)
    return {"data": [to_dict(r) for r in mine[start:start + limit]], "total": total, "page": page,
            "limit": limit, "totalPages": -(-total // limit)}


def _resolve_execution(s: Session, ctx: TenantContext, req: ApprovalRequest, approved: bool,
                       notes: Optional[str], pending: Pending) -> None:
    fields = req.custom_fields or {}
    se = s.get(StepExecution, fields.get("stepExecutionId")) if fields.get("stepExecutionId") else None
    e = s.get(WorkflowExecution, fields.get("workflowExecutionId")) if fields.get("workflowExecutionId") else None
    if se is None or (se.output_data or {}).get("approvalRequestId") != req.id:
        # the step has been re-run since this request was opened
        return
    now = utcnow()
    se.status = "COMPLETED" if approved else "FAILED"
    se.completed_at = now
    se.output_data = {"approvalRequestId": req.id, "decisionBy": ctx.user_id, "notes": notes}
    se.error_message = None if approved else notes
    if e is None or e.status != "WAITING":
        return
    if not approved:
        e.status = "FAILED"
        e.completed_at = now
        e.error_message = notes
        pending.append(("workflow.failed", {"executionId": e.id, "error": notes}))
        return
    pending.append(("workflow.step.completed", {"stepId": se.id, "executionId": e.id}))
    w = s.get(Workflow, e.workflow_id)
    current = se.workflow_step.step_number if se.workflow_step else 0
    remaining = [st for st in w.steps if st.step_number > current] if w is not None else []
    run_steps(s, ctx, e, remaining, pending)


def approve(s: Session, ctx: TenantContext, approval_id: int, payload: ApprovalDecisionIn) -> ApprovalRequest:
    req = _get_approval(s, ctx, approval_id)
    _approver(req, ctx.user_id)
    if req.status != "PENDING":
        raise BadRequest("Approval request already decided")
    req.status = "APPROVED"
    req.decided_by = ctx.user_id
    req.decided_at = utcnow()
    req.decision = "APPROVED"
    req.comments = _combine(req.comments, payload.comments)
    pending: Pending = []
    _resolve_execution(s, ctx, req, True, payload.comments, pending)
    s.commit()
    events.emit("approval.approved", {"requestId": req.id, "approvedBy": ctx.user_id})
    _emit_all(pending)
    return req


def reject(s: Session, ctx: TenantContext, approval_id: int, payload: RejectApprovalIn) -> ApprovalRequest:
    req = _get_approval(s, ctx, approval_id)
    _approver(req, ctx.user_id)
    if req.status != "PENDING":
        raise BadRequest("Approval request already decided")
    req.status = "REJECTED"
    req.decided_by = ctx.user_id
    req.decided_at = utcnow()
    req.decision = "REJECTED"
    note = payload.reason + (f" - {payload.comments}" if payload.comments else "")
    req.comments = _combine(req.comments, note)
    pending: Pending = []
    _resolve_execution(s, ctx, req, False, payload.reason, pending)
    s.commit()
    events.emit("approval.rejected", {"requestId": req.id, "rejectedBy": ctx.user_id})
    _emit_all(pending)
    return req


def delegate(s: Session, ctx: TenantContext, approval_id: int, payload: DelegateApprovalIn) -> ApprovalRequest:
    req = _get_approval(s, ctx, approval_id)
    _approver(req, ctx.user_id)
    req.approver_ids = list(dict.fromkeys([*(req.approver_ids or []), payload.delegate_to_user_id]))
    note = f"Delegated to {payload.delegate_to_user_id}" + (f": {payload.reason}" if payload.reason else "")
    req.comments = _combine(req.comments, note)
    s.commit()
    return req


def approval_stats(s: Session, ctx: TenantContext) -> dict:
    by_status = dict(s.execute(
        select(ApprovalRequest.status, func.count(ApprovalRequest.id))
        .where(ApprovalRequest.tenant_id == ctx.tenant_id)
        .group_by(ApprovalRequest.status)
    ).all())
    return {
        "total": sum(by_status.values()),
        "pending": by_status.get("PENDING", 0),
        "approved": by_status.get("APPROVED", 0),
        "rejected": by_status.get("REJECTED", 0),
    }


# ---------- Routes ----------

@router.post("/workflows", status_code=201)
def workflow_create(payload: WorkflowIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return workflow_dict(create_workflow(s, ctx, payload))


@router.post("/workflows/validate")
def workflow_validate(payload: WorkflowIn):
    return validate_definition(payload)


@router.get("/workflows")
def workflow_index(
    status: Optional[str] = None,
    trigger_type: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return list_workflows(s, ctx, status, trigger_type, search, page, limit)


@router.get("/workflows/{workflow_id}")
def workflow_show(workflow_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return workflow_dict(_get_workflow(s, ctx, workflow_id))


@router.patch("/workflows/{workflow_id}")
def workflow_update(workflow_id: int, payload: WorkflowUpdate, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return workflow_dict(update_workflow(s, ctx, workflow_id, payload))


@router.delete("/workflows/{workflow_id}")
def workflow_remove(workflow_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return delete_workflow(s, ctx, workflow_id)


@router.post("/workflows/{workflow_id}/activate")
def workflow_activate(workflow_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return workflow_dict(set_workflow_status(s, ctx, workflow_id, "ACTIVE"))


@router.post("/workflows/{workflow_id}/deactivate")
def workflow_deactivate(workflow_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return workflow_dict(set_workflow_status(s, ctx, workflow_id, "INACTIVE"))


@router.get("/workflows/{workflow_id}/stats")
def workflow_stats_(workflow_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return workflow_stats(s, ctx, workflow_id)


@router.post("/workflows/{workflow_id}/execute", status_code=201)
def workflow_execute(workflow_id: int, payload: ExecuteWorkflowIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return execute_workflow(s, ctx, workflow_id, payload)


@router.get("/workflows/{workflow_id}/executions")
def workflow_executions(
    workflow_id: int,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        _get_workflow(s, ctx, workflow_id)
        return list_executions(s, ctx, workflow_id, status, page, limit)


@router.get("/executions")
def execution_index(
    workflow_id: Optional[int] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return list_executions(s, ctx, workflow_id, status, page, limit)


@router.get("/executions/{execution_id}")
def execution_show(execution_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return execution_dict(_get_execution(s, ctx, execution_id))


@router.get("/executions/{execution_id}/steps")
def execution_steps(execution_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return [step_execution_dict(se) for se in _get_execution(s, ctx, execution_id).step_executions]


@router.post("/executions/{execution_id}/cancel")
def execution_cancel(execution_id: int, payload: CancelExecutionIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return execution_dict(cancel_execution(s, ctx, execution_id, payload.reason))


@router.post("/executions/{execution_id}/retry")
def execution_retry(execution_id: int, payload: RetryExecutionIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return retry_execution(s, ctx, execution_id, payload.from_step_number)


@router.get("/executions/{execution_id}/logs")
def execution_logs_(execution_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return execution_logs(s, ctx, execution_id)


@router.get("/approvals")
def approval_index(
    status: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return list_approvals(s, ctx, status, entity_type, entity_id, page, limit)


@router.get("/approvals/pending")
def approval_pending(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    ctx: TenantContext = Depends(get_context),
):
    with SessionLocal() as s:
        return pending_for_user(s, ctx, page, limit)


@router.get("/approvals/stats")
def approval_stats_(ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return approval_stats(s, ctx)


@router.get("/approvals/{approval_id}")
def approval_show(approval_id: int, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(_get_approval(s, ctx, approval_id))


@router.post("/approvals/{approval_id}/approve")
def approval_approve(approval_id: int, payload: ApprovalDecisionIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(approve(s, ctx, approval_id, payload))


@router.post("/approvals/{approval_id}/reject")
def approval_reject(approval_id: int, payload: RejectApprovalIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(reject(s, ctx, approval_id, payload))


@router.post("/approvals/{approval_id}/delegate")
def approval_delegate(approval_id: int, payload: DelegateApprovalIn, ctx: TenantContext = Depends(get_context)):
    with SessionLocal() as s:
        return to_dict(delegate(s, ctx, approval_id, payload))
