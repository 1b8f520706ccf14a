from __future__ import annotations

from typing import Dict, List, Optional

import asyncpg

from storage.db import Database
from timebeacon.errors import PersistenceFailure
from timebeacon.models import Project


class InMemoryProjectStore:
    def __init__(self):
        self._projects: Dict[str, List[Project]] = {}

    def add(self, company_id: Optional[str], project: Project) -> None:
        self._projects.setdefault(company_id or "", []).append(project)

    async def list_projects(self, user_id: str, company_id: Optional[str] = None) -> List[Project]:
        return list(self._projects.get(company_id or "", []))


class PostgresProjectStore:
    def __init__(self, db: Database):
        self.db = db

    async def list_projects(self, user_id: str, company_id: Optional[str] = None) -> List[Project]:
        """Active projects of the user's company, with their client attached."""
        if not company_id:
            return []
        try:
            rows = await self.db.fetch(
                """
                SELECT p.id, p.name, p.keywords,
                       c.name AS client, c.domain AS client_domain,
                       COALESCE(c.is_internal, FALSE) AS client_internal
                FROM projects p
                LEFT JOIN clients c ON c.id = p.client_id
                WHERE p.company_id = $1 AND p.is_active
                ORDER BY p.name
                """,
                company_id,
            )
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceFailure(f"project read failed: {e}") from e
        return [Project(**{**dict(r), "keywords": list(r["keywords"] or [])}) for r in rows]
