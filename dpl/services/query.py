#!/usr/bin/env python
#
#
# -----------------------------------------------------------------------------
"""
Query builder
=============
Accumulates the pieces of one SELECT statement and renders it as SQL text
with named bind parameters.

State
-----
tables     alias -> table name (first registration wins)
select     alias -> expression (re-binding an alias to another expression is an error)
where      predicates, ANDed
joins      alias -> (join type, ON clause); one join per alias
group_by   expressions
order_by   expressions; the shared direction is appended when rendering
limit / offset / distinct / collation

Tables without a join render as ``CROSS JOIN``s first, then the explicit
joins in registration order, so an ON clause may refer to any implicit
table or to an earlier join.
"""
# -----------------------------------------------------------------------------

from __future__ import annotations

import re
from typing import Any, Iterable, Optional, Union

from dpl.core.errors import QueryBuildError


# -----------------------------------------------------------------------------

_DIRECTION_SUFFIX = re.compile(r"\s(asc|desc)$", re.IGNORECASE)
_ALIAS_OF_COLUMN  = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)\s*$")
_COLUMN_REF       = re.compile(r"\b([A-Za-z_][A-Za-z0-9_]*)\.[A-Za-z_][A-Za-z0-9_]*")
_LOCAL_TABLE      = re.compile(r"\b(?:FROM|JOIN)\s+([A-Za-z_][A-Za-z0-9_]*)(?:\s+(?:AS\s+)?([A-Za-z_][A-Za-z0-9_]*))?", re.IGNORECASE)
_STRING_LITERAL   = re.compile(r"'(?:[^']|'')*'")


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Dialect
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class Dialect:
    """SQL fragments that differ between SQLite, MySQL / MariaDB and PostgreSQL."""

    def __init__(self, name: str = "sqlite"):
        self.name = "mysql" if name in ("mysql", "mariadb") else name

    def concat(self, *parts: str) -> str:
        if self.name == "mysql":
            return f"CONCAT({', '.join(parts)})"
        return "(" + " || ".join(parts) + ")"

    def group_concat(self, expr: str, separator: str = " | ") -> str:
        if self.name == "mysql":
            return f"GROUP_CONCAT(DISTINCT {expr} ORDER BY {expr} ASC SEPARATOR '{separator}')"
        if self.name == "postgresql":
            return f"STRING_AGG(DISTINCT {expr}, '{separator}' ORDER BY {expr})"
        # SQLite allows DISTINCT only with the default separator
        return f"GROUP_CONCAT({expr}, '{separator}')"

    def compare(self, left: str, operator: str, right: str) -> str:
        operator = operator.upper()
        if operator == "REGEXP":
            if self.name == "postgresql":
                return f"{left} ~ {right}"
            return f"{left} REGEXP {right}"
        if operator == "LIKE":
            return f"{left} LIKE {right}{self.like_escape()}"
        return f"{left} {operator} {right}"

    def like_escape(self) -> str:
        if self.name == "mysql":
            return " ESCAPE '\\\\'"
        return " ESCAPE '\\'"

    def lower_text(self, expr: str) -> str:
        kind = "CHAR" if self.name == "mysql" else "TEXT"
        return f"LOWER(CAST({expr} AS {kind}))"

    def limit_clause(self, limit: Optional[int], offset: Optional[int]) -> str:
        if limit is None and offset is None:
            return ""
        if limit is None:
            if self.name == "sqlite":
                return f" LIMIT -1 OFFSET {int(offset)}"
            if self.name == "mysql":
                return f" LIMIT 18446744073709551615 OFFSET {int(offset)}"
            return f" OFFSET {int(offset)}"
        sql = f" LIMIT {int(limit)}"
        if offset is not None:
            sql += f" OFFSET {int(offset)}"
        return sql


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Builder
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

class QueryBuilder:

    def __init__(self, dialect: Union[Dialect, str] = "sqlite"):
        self.dialect   = dialect if isinstance(dialect, Dialect) else Dialect(dialect)
        self.tables:   dict[str, str] = {}
        self.select:   dict[str, str] = {}
        self.where:    list[str] = []
        self.joins:    dict[str, tuple[str, str]] = {}
        self.group_by: list[str] = []
        self.order_by: list[str] = []
        self.limit:    Optional[int] = None
        self.offset:   Optional[int] = None
        self.direction = "ASC"
        self.distinct  = True
        self.collation: Optional[str] = None
        self.params:   dict[str, Any] = {}
        self._bind_counter = 0

    # ── Bind parameters ────────────────────────────────────────────────────

    def bind(self, value: Any) -> str:
        """Register *value* as a bind parameter and return its placeholder."""
        self._bind_counter += 1
        key = f"p{self._bind_counter}"
        self.params[key] = value
        return f":{key}"

    def bind_list(self, values: Iterable[Any]) -> str:
        return ", ".join(self.bind(v) for v in values)

    # ── Tables and joins ───────────────────────────────────────────────────

    def add_table(self, table: str, alias: str) -> bool:
        """
        Register *alias* for *table*.  Re-registering the same pair is a no-op
        success; an alias already bound to another table keeps its first
        table and returns False.
        """
        if not table:
            raise QueryBuildError("An empty table name was passed")
        if not alias or str(alias).isdigit():
            raise QueryBuildError("An empty or numeric table alias was passed")
        if alias in self.tables:
            return self.tables[alias] == table
        self.tables[alias] = table
        return True

    def add_join(self, alias: str, join_type: str, on: str) -> bool:
        if not alias or not join_type or not on:
            raise QueryBuildError("An empty join clause was passed")
        if alias in self.joins:
            raise QueryBuildError(f"Attempted to overwrite the join clause for '{alias}'")
        self.joins[alias] = (join_type, on)
        return True

    # ── Select ─────────────────────────────────────────────────────────────

    def add_select(self, fields: Union[dict[str, str], Iterable[str]]) -> None:
        """
        Add select fields.  A dict maps alias -> expression; a plain list
        uses the trailing column name of each expression as its alias.
        """
        if isinstance(fields, dict):
            items = list(fields.items())
        else:
            items = []
            for expr in fields:
                match = _ALIAS_OF_COLUMN.search(expr.split(".")[-1])
                if not match:
                    raise QueryBuildError(f"Cannot derive an alias for '{expr}'")
                items.append((match.group(1), expr))

        for alias, expr in items:
            existing = self.select.get(alias)
            if existing is not None and existing != expr:
                raise QueryBuildError(
                    f"Attempted to overwrite field alias '{alias}' ({existing}) with '{expr}'"
                )
            self.select.setdefault(alias, expr)

    # ── Where ──────────────────────────────────────────────────────────────

    def add_where(self, where: Union[str, list[str], dict[str, Any]]) -> bool:
        if not where:
            raise QueryBuildError("An empty where clause was passed")

        if isinstance(where, str):
            self.where.append(where)
        elif isinstance(where, dict):
            for column, value in where.items():
                if value is None:
                    self.where.append(f"{column} IS NULL")
                elif isinstance(value, (list, tuple, set)):
                    values = list(value)
                    if not values:
                        raise QueryBuildError(f"An empty value list was passed for '{column}'")
                    if len(values) == 1:
                        self.where.append(f"{column} = {self.bind(values[0])}")
                    else:
                        self.where.append(f"{column} IN ({self.bind_list(values)})")
                else:
                    self.where.append(f"{column} = {self.bind(value)}")
        elif isinstance(where, (list, tuple)):
            self.where.extend(where)
        else:
            raise QueryBuildError("An invalid where clause was passed")
        return True

    def add_not_where(self, where: dict[str, Iterable[Any]]) -> None:
        """``!=`` for a single value, ``NOT IN`` for several."""
        for column, values in where.items():
            values = list(values)
            if not values:
                continue
            if len(values) > 1:
                self.where.append(f"{column} NOT IN ({self.bind_list(values)})")
            else:
                self.where.append(f"{column} != {self.bind(values[0])}")

    # ── Grouping and ordering ──────────────────────────────────────────────

    def add_group_by(self, expr: str) -> bool:
        if not expr:
            raise QueryBuildError("An empty group by clause was passed")
        if expr not in self.group_by:
            self.group_by.append(expr)
        return True

    def add_order_by(self, expr: str) -> bool:
        if not expr:
            raise QueryBuildError("An empty order by clause was passed")
        if expr not in self.order_by:
            self.order_by.append(expr)
        return True

    def set_order_dir(self, direction: str) -> None:
        self.direction = "DESC" if str(direction).upper().startswith("DESC") else "ASC"

    def set_limit(self, limit: Any) -> None:
        self.limit = _as_int(limit)

    def set_offset(self, offset: Any) -> None:
        self.offset = _as_int(offset)

    def set_collation(self, collation: Optional[str]) -> None:
        self.collation = collation or None

    def collate_sql(self) -> str:
        return f" COLLATE {self.collation}" if self.collation else ""

    # ── Validation ─────────────────────────────────────────────────────────

    def check(self) -> None:
        """
        Every join, and every ``alias.column`` in a select, where, group by,
        order by or ON clause, must refer to a registered table alias.
        Tables a subquery brings in with its own FROM / JOIN count as
        registered inside that clause.
        """
        if not self.tables:
            raise QueryBuildError("No tables were added to the query")
        for alias in self.joins:
            if alias not in self.tables:
                raise QueryBuildError(f"Join for unregistered table alias '{alias}'")

        clauses = [("select", expr) for expr in self.select.values()]
        clauses += [("where", expr) for expr in self.where]
        clauses += [("group by", expr) for expr in self.group_by]
        clauses += [("order by", expr) for expr in self.order_by]
        clauses += [("join", on) for _, on in self.joins.values()]

        for kind, expr in clauses:
            unknown = self._unregistered_aliases(expr)
            if unknown:
                raise QueryBuildError(
                    f"The {kind} clause '{expr}' refers to unregistered table alias '{unknown[0]}'"
                )

    def _unregistered_aliases(self, expr: str) -> list[str]:
        text = _STRING_LITERAL.sub("''", expr)
        local = set()
        for table, alias in _LOCAL_TABLE.findall(text):
            local.add(table)
            if alias:
                local.add(alias)
        return [
            name for name in _COLUMN_REF.findall(text)
            if name not in self.tables and name not in local
        ]

    # ── Rendering ──────────────────────────────────────────────────────────

    def _from_clause(self) -> str:
        implicit = [a for a in self.tables if a not in self.joins]
        if not implicit:
            raise QueryBuildError("Every table is joined; nothing to join onto")

        parts = [_table_sql(self.tables[implicit[0]], implicit[0])]
        for alias in implicit[1:]:
            parts.append(f"CROSS JOIN {_table_sql(self.tables[alias], alias)}")
        for alias, (join_type, on) in self.joins.items():
            parts.append(f"{join_type} {_table_sql(self.tables[alias], alias)} ON ({on})")
        return " ".join(parts)

    def _order_clause(self) -> str:
        clauses = [
            expr if _DIRECTION_SUFFIX.search(expr) else f"{expr} {self.direction}"
            for expr in self.order_by
        ]
        return ", ".join(clauses)

    def render(
        self,
        fields: Optional[dict[str, str]] = None,
        *,
        paginate: bool = True,
        ordered: bool = True,
    ) -> str:
        """Render the SELECT.  *fields* replaces the accumulated select list."""
        self.check()
        fields = fields if fields is not None else self.select
        if not fields:
            raise QueryBuildError("No select fields were added to the query")

        columns = ", ".join(
            expr if expr == alias else f"{expr} AS {alias}" for alias, expr in fields.items()
        )
        sql = "SELECT " + ("DISTINCT " if self.distinct else "") + columns
        sql += " FROM " + self._from_clause()
        if self.where:
            sql += " WHERE " + " AND ".join(f"({w})" for w in self.where)
        if self.group_by:
            sql += " GROUP BY " + ", ".join(self.group_by)
        if ordered and self.order_by:
            sql += " ORDER BY " + self._order_clause()
        if paginate:
            sql += self.dialect.limit_clause(self.limit, self.offset)
        return sql

    def count_sql(self) -> str:
        """Number of rows the query matches, ignoring LIMIT / OFFSET."""
        return f"SELECT COUNT(*) FROM ({self.render(paginate=False, ordered=False)}) AS found"

    def page_ids_sql(self) -> str:
        return self.render({"page_id": "page.page_id"}, paginate=False, ordered=False)

    def category_goal_sql(self) -> str:
        """Distinct categories of a page id list bound as the expanding ``:page_ids``."""
        return (
            "SELECT DISTINCT clgoal.cl_to AS cl_to FROM categorylinks AS clgoal "
            "WHERE clgoal.cl_from IN :page_ids "
            f"ORDER BY clgoal.cl_to {self.direction}"
        )


# -----------------------------------------------------------------------------

def _table_sql(table: str, alias: str) -> str:
    return table if table == alias else f"{table} AS {alias}"


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if re.fullmatch(r"[+-]?\d+", text):
        return int(text)
    return None


# -----------------------------------------------------------------------------
