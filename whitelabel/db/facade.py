"""SQLAlchemy-backed database connection and CRUD helpers."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, TypedDict

from sqlalchemy import delete, select, text

from whitelabel.db.engine import create_db_engine, create_session_factory
from whitelabel.db.orm import (
    Base,
    DeploymentLogRow,
    DeploymentRow,
    StepResultRow,
    _utcnow_str,
    parse_timestamp,
    parse_timestamp_opt,
    to_timestamp,
    to_timestamp_opt,
)
from whitelabel.models.deployment import Deployment, DeploymentConfig, DeploymentStatus

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy import Engine
    from sqlalchemy.orm import Session, sessionmaker


class StepResultDict(TypedDict):
    id: int
    deployment_id: str
    step_name: str
    step_number: int
    data: object
    created_at: str


class LogEntryDict(TypedDict):
    id: int
    deployment_id: str | None
    step_name: str
    event: str
    message: str
    created_at: str


class Database:
    """SQLAlchemy-backed wrapper with CRUD helpers for deployments and step results."""

    def __init__(self, db_path: str | Path = ":memory:"):
        self.db_path = str(db_path)
        self._engine: Engine = create_db_engine(self.db_path)
        self._session_factory: sessionmaker[Session] = create_session_factory(self._engine)

    @property
    def engine(self) -> Engine:
        """Expose the SQLAlchemy engine for inspection and advanced use."""
        return self._engine

    @property
    def Session(self) -> sessionmaker[Session]:  # noqa: N802
        """Expose the session factory for consumers that need direct access."""
        return self._session_factory

    def init_schema(self) -> None:
        """Create all tables via ORM metadata."""
        Base.metadata.create_all(self._engine)

    def close(self) -> None:
        self._engine.dispose()

    def check_connection(self) -> bool:
        """Verify the database is reachable. Returns True or raises."""
        with self._session_factory() as session:
            session.execute(text("SELECT 1"))
        return True

    # --- Deployments ---

    def create_deployment(self, deployment: Deployment) -> Deployment:
        with self._session_factory() as session:
            row = DeploymentRow(id=deployment.id)
            self._apply_deployment(row, deployment)
            row.created_at = to_timestamp(deployment.created_at)
            session.add(row)
            session.commit()
            return deployment

    def save_deployment(self, deployment: Deployment) -> None:
        """Persist every mutable field of *deployment*. Missing rows are ignored."""
        with self._session_factory() as session:
            row = session.get(DeploymentRow, deployment.id)
            if row is None:
                return
            self._apply_deployment(row, deployment)
            session.commit()

    def get_deployment(self, deployment_id: str) -> Deployment | None:
        with self._session_factory() as session:
            row = session.get(DeploymentRow, deployment_id)
            if row is None:
                return None
            return self._row_to_deployment(row)

    def list_deployments(
        self,
        organization_id: str | None = None,
        status: DeploymentStatus | None = None,
    ) -> list[Deployment]:
        with self._session_factory() as session:
            stmt = select(DeploymentRow).order_by(DeploymentRow.created_at, DeploymentRow.id)
            if organization_id:
                stmt = stmt.where(DeploymentRow.organization_id == organization_id)
            if status:
                stmt = stmt.where(DeploymentRow.status == status.value)
            rows = session.scalars(stmt).all()
            return [self._row_to_deployment(r) for r in rows]

    def find_deployment_by_claim(self, claim_id: str) -> Deployment | None:
        with self._session_factory() as session:
            stmt = select(DeploymentRow).where(DeploymentRow.domain_claim_id == claim_id)
            row = session.scalars(stmt).first()
            if row is None:
                return None
            return self._row_to_deployment(row)

    def delete_deployment(self, deployment_id: str) -> bool:
        """Delete a deployment with its step results and log rows."""
        with self._session_factory() as session:
            session.execute(
                delete(StepResultRow).where(StepResultRow.deployment_id == deployment_id)
            )
            session.execute(
                delete(DeploymentLogRow).where(DeploymentLogRow.deployment_id == deployment_id)
            )
            result = session.execute(
                delete(DeploymentRow).where(DeploymentRow.id == deployment_id)
            )
            session.commit()
            return result.rowcount == 1

    # --- Step Results ---

    def save_step_result(
        self,
        deployment_id: str,
        step_name: str,
        step_number: int,
        data_json: str,
    ) -> int:
        with self._session_factory() as session:
            # Upsert: try to find existing, update or insert
            stmt = select(StepResultRow).where(
                StepResultRow.deployment_id == deployment_id,
                StepResultRow.step_name == step_name,
            )
            existing = session.scalars(stmt).first()
            if existing:
                existing.data_json = data_json
                session.commit()
                return existing.id
            row = StepResultRow(
                deployment_id=deployment_id,
                step_name=step_name,
                step_number=step_number,
                data_json=data_json,
            )
            session.add(row)
            session.commit()
            return row.id

    def get_step_result(self, deployment_id: str, step_name: str) -> StepResultDict | None:
        with self._session_factory() as session:
            stmt = select(StepResultRow).where(
                StepResultRow.deployment_id == deployment_id,
                StepResultRow.step_name == step_name,
            )
            row = session.scalars(stmt).first()
            if row is None:
                return None
            return self._step_row_to_dict(row)

    def get_all_step_results(self, deployment_id: str) -> list[StepResultDict]:
        with self._session_factory() as session:
            stmt = (
                select(StepResultRow)
                .where(StepResultRow.deployment_id == deployment_id)
                .order_by(StepResultRow.step_number)
            )
            rows = session.scalars(stmt).all()
            return [self._step_row_to_dict(r) for r in rows]

    # --- Deployment Log ---

    def log_event(
        self,
        event: str,
        message: str = "",
        deployment_id: str | None = None,
        step_name: str = "",
    ) -> None:
        with self._session_factory() as session:
            row = DeploymentLogRow(
                deployment_id=deployment_id,
                step_name=step_name,
                event=event,
                message=message,
            )
            session.add(row)
            session.commit()

    def get_log(self, deployment_id: str | None = None) -> list[LogEntryDict]:
        """Log rows for one deployment, or every row when *deployment_id* is None."""
        with self._session_factory() as session:
            stmt = select(DeploymentLogRow).order_by(DeploymentLogRow.id)
            if deployment_id is not None:
                stmt = stmt.where(DeploymentLogRow.deployment_id == deployment_id)
            rows = session.scalars(stmt).all()
            return [
                {
                    "id": r.id,
                    "deployment_id": r.deployment_id,
                    "step_name": r.step_name,
                    "event": r.event,
                    "message": r.message,
                    "created_at": r.created_at,
                }
                for r in rows
            ]

    # --- Helpers ---

    @staticmethod
    def _apply_deployment(row: DeploymentRow, deployment: Deployment) -> None:
        row.organization_id = deployment.organization_id
        row.name = deployment.name
        row.status = deployment.status.value
        row.config_json = deployment.config.model_dump_json()
        row.url = deployment.url
        row.region = deployment.region
        row.certificate_id = deployment.certificate_id
        row.domain_claim_id = deployment.domain_claim_id
        row.current_step = deployment.current_step
        row.status_message = deployment.status_message
        row.updated_at = _utcnow_str()
        row.deployed_at = to_timestamp_opt(deployment.deployed_at)

    @staticmethod
    def _row_to_deployment(row: DeploymentRow) -> Deployment:
        return Deployment(
            id=row.id,
            organization_id=row.organization_id,
            name=row.name,
            status=DeploymentStatus(row.status),
            config=DeploymentConfig.model_validate_json(row.config_json),
            url=row.url,
            region=row.region,
            certificate_id=row.certificate_id,
            domain_claim_id=row.domain_claim_id,
            current_step=row.current_step,
            status_message=row.status_message,
            created_at=parse_timestamp(row.created_at),
            updated_at=parse_timestamp(row.updated_at),
            deployed_at=parse_timestamp_opt(row.deployed_at),
        )

    @staticmethod
    def _step_row_to_dict(row: StepResultRow) -> StepResultDict:
        return {
            "id": row.id,
            "deployment_id": row.deployment_id,
            "step_name": row.step_name,
            "step_number": row.step_number,
            "data": json.loads(row.data_json),
            "created_at": row.created_at,
        }
