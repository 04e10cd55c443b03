"""
Scheduled expiration endpoint

Called by an external scheduler (cron, cloud scheduler) so reservations
expire even when no instance has the interval task enabled. Runs the same
ExpirationSweeper as the background task.
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..dependencies import get_sweeper, verify_cron_token
from ..exceptions import SweepError
from ..models import SweepTrigger
from ..sweeper import ExpirationSweeper
from ..utils import generate_request_id

router = APIRouter(prefix="/functions", tags=["expiration"])
logger = logging.getLogger(__name__)


@router.post("/auto-cancel-reservations", dependencies=[Depends(verify_cron_token)])
async def auto_cancel_reservations(sweeper: ExpirationSweeper = Depends(get_sweeper)):
    """
    Expire unpaid reservations past their deadline

    Returns:
        {"success": true, "cancelled": n, "reservations": [{id, customerName, deadline}]}
        or HTTP 500 with {"success": false, "error": "..."}
    """
    request_id = generate_request_id()

    try:
        result = await sweeper.sweep(trigger=SweepTrigger.SCHEDULED)
    except SweepError as e:
        logger.error(f"[{request_id}] Scheduled expiration failed: {e.message}")
        return JSONResponse(status_code=500, content={"success": False, "error": e.message})
    except Exception as e:
        logger.error(f"[{request_id}] Scheduled expiration error: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    logger.info(
        f"[{request_id}] Scheduled expiration: checked={result.checked} "
        f"cancelled={result.cancelled} failed={len(result.failed)}"
    )
    return result.to_response()
