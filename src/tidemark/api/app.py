"""FastAPI application with lifespan and router mounting."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from tidemark.api.routes import admin, health
from tidemark.core.config import AppSettings, load_settings
from tidemark.core.deployment import TableDeployment, build_table_deployments
from tidemark.core.log_config import configure_logging
from tidemark.core.protocols import ICycleLease, INotifier, IParameterStore
from tidemark.orchestration.controller import ControllerFactory, build_controller
from tidemark.orchestration.scheduler import SystemScheduler
from tidemark.persistence import create_export_service, create_persistence


def _default_controller_factory(
    settings: AppSettings,
    parameters: IParameterStore,
    notifier: INotifier,
    lease: ICycleLease,
) -> ControllerFactory:
    scheduler = SystemScheduler()

    def factory(deployment: TableDeployment):
        return build_controller(
            deployment,
            settings,
            parameters=parameters,
            exports=create_export_service(deployment, settings),
            notifier=notifier,
            scheduler=scheduler,
            lease=lease,
        )

    return factory


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize application resources not supplied to ``create_app``."""
    state = app.state
    if state.settings is None:
        state.settings = load_settings()
    configure_logging(state.settings.log_level)
    if state.deployments is None:
        state.deployments = {d.table_name: d for d in build_table_deployments(state.settings)}
    if state.parameters is None or state.controller_factory is None:
        parameters, notifier, lease = create_persistence(state.settings)
        if state.parameters is None:
            state.parameters = parameters
        if state.controller_factory is None:
            state.controller_factory = _default_controller_factory(
                state.settings, state.parameters, notifier, lease,
            )
    yield


def create_app(
    settings: AppSettings | None = None,
    *,
    parameters: IParameterStore | None = None,
    controller_factory: ControllerFactory | None = None,
    deployments: list[TableDeployment] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Tidemark Continuous Incremental Exports",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.parameters = parameters
    app.state.controller_factory = controller_factory
    app.state.deployments = {d.table_name: d for d in deployments} if deployments is not None else None
    app.state.latest_outcomes = {}
    app.include_router(health.router)
    app.include_router(admin.router, prefix="/admin")
    return app
