import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from ..auth import require_token
from ..config import settings
from ..dependencies import get_launcher, get_repo, get_waiter
from ..errors import NotFound, SubmissionError, WaitTimeout
from ..models import StartRequest, StartResponse, OperationOut
from ..services.launcher import OperationLauncher
from ..services.waiter import CompletionWaiter
from ..storage.payloads import PayloadReference
from ..storage.repo import OperationRepo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/asyncOperations", dependencies=[Depends(require_token)])


@router.post("", response_model=StartResponse, status_code=201)
def start_operation(req: StartRequest, launcher: OperationLauncher = Depends(get_launcher)):
    payload = PayloadReference(req.payload_uri) if req.payload_uri is not None else req.payload
    try:
        started = launcher.start(
            function_id=req.function_id,
            cluster_id=req.cluster_id or settings.default_cluster,
            task_definition_id=req.task_definition_id or settings.default_task_definition,
            description=req.description,
            operation_type=req.operation_type,
            payload=payload,
        )
    except SubmissionError as exc:
        logger.error("Async operation submission failed: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc))
    return StartResponse(id=started.id, task_handle=started.task_handle)


@router.get("/{operation_id}", response_model=OperationOut)
def get_operation(
    operation_id: str,
    wait: bool = Query(False),
    repo: OperationRepo = Depends(get_repo),
    waiter: CompletionWaiter = Depends(get_waiter),
):
    try:
        rec = repo.get(operation_id)
    except NotFound:
        raise HTTPException(status_code=404, detail="Unknown async operation")

    if wait and not rec.is_terminal:
        try:
            rec = waiter.wait(operation_id, rec.task_handle, timeout=settings.max_status_longpoll_seconds)
        except WaitTimeout:
            rec = repo.get(operation_id)

    return OperationOut(**rec.to_api())
