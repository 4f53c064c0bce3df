from __future__ import annotations

from psycopg import Connection

from .rows import fetch_all, fetch_one


class ProblemRepository:
    def get(self, conn: Connection, problem_id: int) -> dict | None:
        cur = conn.execute(
            "SELECT id, category_slug, name, parent_id FROM service_problem WHERE id = %s;",
            (problem_id,),
        )
        return fetch_one(cur)

    def list_for_category(self, conn: Connection, category_slug: str, parent_id: int | None = None) -> list[dict]:
        # without a parent only the top-level problems are returned
        if parent_id is None:
            cur = conn.execute(
                """
                SELECT id, category_slug, name, parent_id
                FROM service_problem
                WHERE category_slug = %s AND parent_id IS NULL
                ORDER BY name;
                """,
                (category_slug,),
            )
        else:
            cur = conn.execute(
                """
                SELECT id, category_slug, name, parent_id
                FROM service_problem
                WHERE category_slug = %s AND parent_id = %s
                ORDER BY name;
                """,
                (category_slug, parent_id),
            )
        return fetch_all(cur)
