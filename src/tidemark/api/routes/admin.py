"""Operator endpoints: inspect workflow parameters, flip the workflow action, run a cycle."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, FastAPI, HTTPException, Request
from pydantic import BaseModel

from tidemark.core.deployment import TableDeployment
from tidemark.models.workflow import ParameterName, WorkflowAction
from tidemark.persistence.parameters import WorkflowParameterRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin"])


class WorkflowActionUpdate(BaseModel):
    action: WorkflowAction


def _deployment(request: Request, table: str) -> TableDeployment:
    deployment = request.app.state.deployments.get(table)
    if deployment is None:
        raise HTTPException(status_code=404, detail=f"Table {table!r} is not configured")
    return deployment


def _repository(request: Request, table: str) -> WorkflowParameterRepository:
    return WorkflowParameterRepository(request.app.state.parameters, table)


@router.get("/tables")
def list_tables(request: Request) -> list[dict]:
    """Return the deployment of every configured table."""
    return [d.model_dump(mode="json") for d in request.app.state.deployments.values()]


@router.get("/tables/{table}/parameters")
def get_parameters(table: str, request: Request) -> dict:
    """Return the raw workflow parameters of a table; missing ones are omitted."""
    _deployment(request, table)
    raw = _repository(request, table).read_raw()
    return {"table": table, "parameters": {name.value: value for name, value in raw.items()}}


@router.put("/tables/{table}/workflow-action")
def set_workflow_action(table: str, update: WorkflowActionUpdate, request: Request) -> dict:
    """Set the operator switch read at the start of every cycle."""
    _deployment(request, table)
    _repository(request, table).put(ParameterName.WORKFLOW_ACTION, update.action.value)
    return {"table": table, "workflow_action": update.action.value}


def _run_cycle(app: FastAPI, deployment: TableDeployment) -> None:
    controller = app.state.controller_factory(deployment)
    outcome = controller.run_cycle()
    app.state.latest_outcomes[deployment.table_name] = outcome
    logger.info("On-demand cycle for table %s ended at %s", deployment.table_name, outcome.terminal)


@router.post("/tables/{table}/cycles", status_code=202)
def run_cycle(table: str, request: Request, background_tasks: BackgroundTasks) -> dict:
    """Start one export cycle for a table after the response is sent.

    A full export can be polled for hours, so the outcome is read back from
    ``GET /tables/{table}/cycles/latest``.
    """
    deployment = _deployment(request, table)
    background_tasks.add_task(_run_cycle, request.app, deployment)
    return {"table": table, "status": "accepted"}


@router.get("/tables/{table}/cycles/latest")
def latest_cycle(table: str, request: Request) -> dict:
    """Return the outcome of the last on-demand cycle of a table."""
    _deployment(request, table)
    outcome = request.app.state.latest_outcomes.get(table)
    if outcome is None:
        raise HTTPException(status_code=404, detail=f"No cycle has run for table {table!r}")
    return outcome.model_dump(mode="json")
