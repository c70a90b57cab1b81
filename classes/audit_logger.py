# classes/audit_logger.py
import json
import logging
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from classes.agent_models import OperationResult
from classes.entities import AiExecutionLog

logger = logging.getLogger("opsync_agent")

MAX_LOG_PAGE = 100


class AuditLogger:
    """
    Append-only record of every agent invocation that reached execution
    (or failed at the reasoning backend). There is no update or delete path.
    """

    def __init__(self, session_factory: sessionmaker):
        self.SessionFactory = session_factory

    def record(
        self,
        prompt: str,
        results: List[OperationResult],
        execution_time_ms: int,
        automation_id: Optional[str] = None,
    ) -> str:
        success_count = sum(1 for r in results if r.status == "success")
        error_count = len(results) - success_count
        return self._insert(
            prompt=prompt,
            success=error_count == 0,
            operations_count=len(results),
            success_count=success_count,
            error_count=error_count,
            operations=[r.model_dump(by_alias=True, exclude_none=True, mode="json") for r in results],
            execution_time_ms=execution_time_ms,
            automation_id=automation_id,
        )

    def record_failure(
        self,
        prompt: str,
        error: str,
        execution_time_ms: int,
        automation_id: Optional[str] = None,
    ) -> str:
        """
        Invocation that never reached execution: one synthesized system error, zero operations.
        """
        return self._insert(
            prompt=prompt,
            success=False,
            operations_count=0,
            success_count=0,
            error_count=1,
            operations=[{"tool": "system", "status": "error", "error": error}],
            execution_time_ms=execution_time_ms,
            automation_id=automation_id,
        )

    def _insert(self, *, operations: list, **fields) -> str:
        session = self.SessionFactory()
        try:
            row = AiExecutionLog(operations=json.dumps(operations, default=str), **fields)
            session.add(row)
            session.commit()
            logger.debug(f"Audit log {row.id} written ({fields.get('operations_count')} operation(s))")
            return row.id
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def list_logs(self, limit: int = 50, offset: int = 0) -> List[dict]:
        """Newest first, at most MAX_LOG_PAGE rows, operations decoded from JSON."""
        limit = max(1, min(int(limit or 50), MAX_LOG_PAGE))
        offset = max(0, int(offset or 0))

        session = self.SessionFactory()
        try:
            rows = (
                session.query(AiExecutionLog)
                .order_by(AiExecutionLog.created_at.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            logs = []
            for row in rows:
                entry = row.to_dict()
                try:
                    entry["operations"] = json.loads(row.operations or "[]")
                except ValueError:
                    entry["operations"] = []
                logs.append(entry)
            return logs
        finally:
            session.close()
