"""
API Router: Cron trigger.

External schedulers hit this endpoint to run one reconciliation sweep.
The sweep always answers 200 with its summary; per-call failures are in
``error_details``.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Header, HTTPException

from claimchaser.api.dependencies import OrchestratorDep, SettingsDep
from claimchaser.logging_config import get_logger
from claimchaser.schemas.call import SweepSummary

logger = get_logger(__name__)
router = APIRouter(prefix="/cron", tags=["Cron"])


def _check_secret(expected: str, authorization: Optional[str]) -> None:
    if not expected:
        return
    if authorization != f"Bearer {expected}":
        logger.warning("cron_unauthorized")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.api_route("/process-completed-calls", methods=["GET", "POST"], response_model=SweepSummary)
async def process_completed_calls(
    orchestrator: OrchestratorDep,
    settings: SettingsDep,
    authorization: Optional[str] = Header(default=None),
) -> SweepSummary:
    _check_secret(settings.cron_secret, authorization)
    return await orchestrator.run_sweep()
