from typing import Annotated

from fastapi import Depends, Request

from claimchaser.config import Settings, get_settings
from claimchaser.services.call_orchestrator import CallOrchestrator


def get_orchestrator(request: Request) -> CallOrchestrator:
    return request.app.state.orchestrator


OrchestratorDep = Annotated[CallOrchestrator, Depends(get_orchestrator)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
