"""
Usage counters backing the plan-limit check.
"""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends
from sqlalchemy import Select, func, select

from tenantguard.core.executor import SessionScopedExecutor, get_executor
from tenantguard.models import FileUpload, User
from tenantguard.policy import LimitName


def active_users_query(tenant_id: int) -> Select:
    return select(func.count(User.id).label("current")).where(
        User.company_id == tenant_id,
        User.status == "active",
        User.deleted_at.is_(None),
    )


def storage_bytes_query(tenant_id: int) -> Select:
    return select(
        func.coalesce(func.sum(FileUpload.file_size), 0).label("current")
    ).where(
        FileUpload.company_id == tenant_id,
        FileUpload.status == "active",
        FileUpload.deleted_at.is_(None),
    )


USAGE_QUERIES: dict[LimitName, Callable[[int], Select]] = {
    LimitName.USERS: active_users_query,
    LimitName.STORAGE: storage_bytes_query,
}


class ExecutorUsageCounter:
    """Counts a company's usage through the executor, bound to that company."""

    def __init__(self, executor: SessionScopedExecutor) -> None:
        self._executor = executor

    async def count(self, limit: LimitName, tenant_id: int) -> int | None:
        build = USAGE_QUERIES.get(limit)
        if build is None:
            return None
        result = await self._executor.execute(build(tenant_id), tenant_id=tenant_id)
        return int(result.scalar() or 0)


def get_usage_counter(
    executor: Annotated[SessionScopedExecutor, Depends(get_executor)],
) -> ExecutorUsageCounter:
    return ExecutorUsageCounter(executor)
