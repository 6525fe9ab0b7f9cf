"""
PostgreSQL Terminology Store

asyncpg-backed implementation of the concept and mapping query interfaces.
Each CodeSystem (with its initial concepts) and each ConceptMap (with its
group/element/target tree) is written in a single transaction.
"""

from contextlib import asynccontextmanager
import json
from uuid import uuid4

import asyncpg
import structlog

from tmbridge.errors import DuplicateResource, InvalidArgument, NotFound, StoreUnavailable
from tmbridge.models.terminology import (
    CodeSystem,
    Concept,
    ConceptMap,
    DependsOn,
    Designation,
    Equivalence,
    MappingElement,
    MappingGroup,
    MappingTarget,
    ValueSet,
    ValueSetInclude,
)
from tmbridge.store.base import MappingEdge, TerminologyStore

logger = structlog.get_logger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS code_systems (
    id          TEXT PRIMARY KEY,
    url         TEXT NOT NULL UNIQUE,
    name        TEXT NOT NULL,
    title       TEXT,
    version     TEXT,
    status      TEXT NOT NULL DEFAULT 'active',
    description TEXT,
    publisher   TEXT,
    content     TEXT NOT NULL DEFAULT 'complete',
    created_at  TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS concepts (
    id              BIGSERIAL PRIMARY KEY,
    code_system_url TEXT NOT NULL REFERENCES code_systems(url) ON DELETE CASCADE,
    code            TEXT NOT NULL,
    display         TEXT NOT NULL DEFAULT '',
    definition      TEXT,
    parent_code     TEXT,
    UNIQUE (code_system_url, code)
);

CREATE TABLE IF NOT EXISTS designations (
    id         BIGSERIAL PRIMARY KEY,
    concept_id BIGINT NOT NULL REFERENCES concepts(id) ON DELETE CASCADE,
    language   TEXT NOT NULL,
    value      TEXT NOT NULL,
    use        JSONB
);

CREATE TABLE IF NOT EXISTS concept_maps (
    id          TEXT PRIMARY KEY,
    url         TEXT NOT NULL UNIQUE,
    name        TEXT,
    title       TEXT,
    version     TEXT,
    status      TEXT NOT NULL DEFAULT 'active',
    description TEXT,
    publisher   TEXT,
    source_uri  TEXT NOT NULL,
    target_uri  TEXT NOT NULL,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS mapping_groups (
    id             BIGSERIAL PRIMARY KEY,
    concept_map_id TEXT NOT NULL REFERENCES concept_maps(id) ON DELETE CASCADE,
    position       INTEGER NOT NULL,
    source         TEXT,
    target         TEXT
);

CREATE TABLE IF NOT EXISTS mapping_elements (
    id       BIGSERIAL PRIMARY KEY,
    group_id BIGINT NOT NULL REFERENCES mapping_groups(id) ON DELETE CASCADE,
    code     TEXT NOT NULL,
    display  TEXT
);

CREATE TABLE IF NOT EXISTS mapping_targets (
    id          BIGSERIAL PRIMARY KEY,
    element_id  BIGINT NOT NULL REFERENCES mapping_elements(id) ON DELETE CASCADE,
    code        TEXT NOT NULL,
    display     TEXT,
    equivalence TEXT NOT NULL,
    comment     TEXT,
    depends_on  JSONB NOT NULL DEFAULT '[]'::jsonb
);

CREATE TABLE IF NOT EXISTS value_sets (
    id          TEXT PRIMARY KEY,
    url         TEXT NOT NULL UNIQUE,
    name        TEXT,
    title       TEXT,
    version     TEXT,
    status      TEXT NOT NULL DEFAULT 'active',
    description TEXT,
    publisher   TEXT,
    includes    JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_at  TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_concepts_parent ON concepts (code_system_url, parent_code);
CREATE INDEX IF NOT EXISTS idx_elements_code ON mapping_elements (code);
CREATE INDEX IF NOT EXISTS idx_targets_code ON mapping_targets (code);
CREATE INDEX IF NOT EXISTS idx_concept_maps_source ON concept_maps (source_uri);
CREATE INDEX IF NOT EXISTS idx_concept_maps_target ON concept_maps (target_uri);
"""

_EDGE_SELECT = """
    SELECT cm.url AS concept_map_url,
           cm.source_uri, cm.target_uri,
           g.source AS group_source, g.target AS group_target,
           e.code AS element_code, e.display AS element_display,
           t.code AS target_code, t.display AS target_display,
           t.equivalence, t.comment, t.depends_on
    FROM concept_maps cm
    JOIN mapping_groups g ON g.concept_map_id = cm.id
    JOIN mapping_elements e ON e.group_id = g.id
    JOIN mapping_targets t ON t.element_id = e.id
"""

_EDGE_ORDER = "ORDER BY cm.created_at, cm.url, g.position, e.id, t.id"

_CONNECTION_ERRORS = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncpg.InternalClientError,
    OSError,
)


def like_pattern(term: str) -> str:
    """Escape LIKE wildcards so the term matches as a literal substring."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _json_value(value):
    """asyncpg returns JSONB as text unless a codec is registered."""
    if isinstance(value, str):
        return json.loads(value)
    return value


class PostgresTerminologyStore(TerminologyStore):
    """
    Terminology store backed by PostgreSQL.

    Usage:
        pool = await asyncpg.create_pool(settings.postgres.connection_url)
        store = PostgresTerminologyStore(pool)
        await store.init_schema()
        concept = await store.find_concept(NAMASTE_URL, "SR11")
    """

    def __init__(self, pool):
        """
        Initialize with an asyncpg connection pool.

        Args:
            pool: asyncpg.Pool instance
        """
        self.pool = pool

    @asynccontextmanager
    async def _connection(self):
        """Acquire a connection, reporting backend failures as StoreUnavailable."""
        try:
            async with self.pool.acquire() as conn:
                yield conn
        except _CONNECTION_ERRORS as e:
            logger.error("PostgreSQL unavailable", error=str(e))
            raise StoreUnavailable(f"Terminology store unavailable: {e}") from e
        except asyncpg.PostgresError as e:
            if isinstance(e, asyncpg.UniqueViolationError):
                raise
            logger.error("PostgreSQL query failed", error=str(e))
            raise StoreUnavailable(f"Terminology store query failed: {e}") from e

    async def init_schema(self) -> None:
        async with self._connection() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Terminology schema ready")

    async def close(self) -> None:
        await self.pool.close()

    # =========================================================================
    # CodeSystems and concepts
    # =========================================================================

    async def find_code_system(self, url: str) -> CodeSystem | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("""
                SELECT id, url, name, title, version, status, description, publisher, content
                FROM code_systems
                WHERE url = $1
            """, url)
            return CodeSystem(**dict(row)) if row else None

    async def find_code_system_by_id(self, id: str) -> CodeSystem | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("""
                SELECT id, url, name, title, version, status, description, publisher, content
                FROM code_systems
                WHERE id = $1
            """, id)
            return CodeSystem(**dict(row)) if row else None

    async def list_code_systems(
        self,
        name: str | None = None,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[CodeSystem]:
        async with self._connection() as conn:
            rows = await conn.fetch("""
                SELECT id, url, name, title, version, status, description, publisher, content
                FROM code_systems
                WHERE ($1::text IS NULL OR name ILIKE $1)
                  AND ($2::text IS NULL OR status = $2)
                ORDER BY created_at, url
                LIMIT $3 OFFSET $4
            """, like_pattern(name) if name else None, status, limit, offset)
            return [CodeSystem(**dict(row)) for row in rows]

    async def count_concepts(self, system_url: str) -> int:
        async with self._connection() as conn:
            return await conn.fetchval(
                "SELECT COUNT(*) FROM concepts WHERE code_system_url = $1", system_url
            )

    async def find_concept(self, system_url: str, code: str) -> Concept | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("""
                SELECT id, code, display, definition, parent_code
                FROM concepts
                WHERE code_system_url = $1 AND code = $2
            """, system_url, code)
            if not row:
                return None
            concepts = await self._hydrate(conn, system_url, [row])
            return concepts[0]

    async def search_concepts(
        self,
        system_url: str,
        term: str,
        limit: int,
        include_designations: bool = True,
    ) -> list[Concept]:
        async with self._connection() as conn:
            rows = await conn.fetch("""
                SELECT c.id, c.code, c.display, c.definition, c.parent_code
                FROM concepts c
                WHERE c.code_system_url = $1
                  AND (
                      c.code ILIKE $2
                      OR c.display ILIKE $2
                      OR c.definition ILIKE $2
                      OR ($4 AND EXISTS (
                          SELECT 1 FROM designations d
                          WHERE d.concept_id = c.id AND d.value ILIKE $2
                      ))
                  )
                ORDER BY c.display, c.code
                LIMIT $3
            """, system_url, like_pattern(term.strip()), limit, include_designations)
            return await self._hydrate(conn, system_url, rows)

    async def list_concepts(self, system_url: str, limit: int | None = None) -> list[Concept]:
        async with self._connection() as conn:
            rows = await conn.fetch("""
                SELECT id, code, display, definition, parent_code
                FROM concepts
                WHERE code_system_url = $1
                ORDER BY id
                LIMIT $2
            """, system_url, limit)
            return await self._hydrate(conn, system_url, rows)

    async def get_children(self, system_url: str, code: str) -> list[Concept]:
        async with self._connection() as conn:
            rows = await conn.fetch("""
                SELECT id, code, display, definition, parent_code
                FROM concepts
                WHERE code_system_url = $1 AND parent_code = $2
                ORDER BY id
            """, system_url, code)
            return await self._hydrate(conn, system_url, rows)

    async def _hydrate(self, conn, system_url: str, rows) -> list[Concept]:
        """Attach designations to concept rows, preserving row order."""
        if not rows:
            return []
        ids = [row["id"] for row in rows]
        designation_rows = await conn.fetch("""
            SELECT concept_id, language, value, use
            FROM designations
            WHERE concept_id = ANY($1::bigint[])
            ORDER BY id
        """, ids)

        by_concept: dict[int, list[Designation]] = {}
        for d in designation_rows:
            by_concept.setdefault(d["concept_id"], []).append(Designation(
                language=d["language"],
                value=d["value"],
                use=_json_value(d["use"]),
            ))

        return [
            Concept(
                system=system_url,
                code=row["code"],
                display=row["display"] or "",
                definition=row["definition"],
                parent=row["parent_code"],
                designations=by_concept.get(row["id"], []),
            )
            for row in rows
        ]

    async def create_code_system(
        self,
        code_system: CodeSystem,
        concepts: list[Concept],
    ) -> CodeSystem:
        stored = code_system.model_copy(update={"id": code_system.id or str(uuid4())})
        self._check_parents(stored.url, set(), concepts)

        try:
            async with self._connection() as conn:
                async with conn.transaction():
                    await conn.execute("""
                        INSERT INTO code_systems
                            (id, url, name, title, version, status, description, publisher, content)
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
                    """, stored.id, stored.url, stored.name, stored.title, stored.version,
                        stored.status, stored.description, stored.publisher, stored.content)
                    await self._insert_concepts(conn, stored.url, concepts)
        except asyncpg.UniqueViolationError as e:
            raise DuplicateResource(
                f"CodeSystem with URL {stored.url} already exists or has duplicate codes"
            ) from e

        logger.info("CodeSystem created", url=stored.url, concepts=len(concepts))
        return stored

    async def add_concepts(self, system_url: str, concepts: list[Concept]) -> int:
        try:
            async with self._connection() as conn:
                async with conn.transaction():
                    exists = await conn.fetchval(
                        "SELECT 1 FROM code_systems WHERE url = $1", system_url
                    )
                    if not exists:
                        raise NotFound("CodeSystem", system_url)
                    known = await conn.fetch(
                        "SELECT code FROM concepts WHERE code_system_url = $1", system_url
                    )
                    self._check_parents(system_url, {r["code"] for r in known}, concepts)
                    await self._insert_concepts(conn, system_url, concepts)
        except asyncpg.UniqueViolationError as e:
            raise InvalidArgument(f"Duplicate code in CodeSystem {system_url}") from e

        logger.info("Concepts added", url=system_url, added=len(concepts))
        return len(concepts)

    @staticmethod
    def _check_parents(system_url: str, known: set[str], concepts: list[Concept]) -> None:
        codes = known | {c.code for c in concepts}
        for concept in concepts:
            if concept.parent is not None and concept.parent not in codes:
                raise InvalidArgument(
                    f"Concept '{concept.code}' references unknown parent '{concept.parent}'"
                )

    async def _insert_concepts(self, conn, system_url: str, concepts: list[Concept]) -> None:
        for concept in concepts:
            concept_id = await conn.fetchval("""
                INSERT INTO concepts (code_system_url, code, display, definition, parent_code)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING id
            """, system_url, concept.code, concept.display, concept.definition, concept.parent)
            for designation in concept.designations:
                await conn.execute("""
                    INSERT INTO designations (concept_id, language, value, use)
                    VALUES ($1, $2, $3, $4::jsonb)
                """, concept_id, designation.language, designation.value,
                    json.dumps(designation.use) if designation.use else None)

    # =========================================================================
    # ConceptMaps and edges
    # =========================================================================

    async def find_edges_from(
        self,
        source_system: str,
        code: str,
        target_system: str | None = None,
    ) -> list[MappingEdge]:
        async with self._connection() as conn:
            rows = await conn.fetch(f"""
                {_EDGE_SELECT}
                WHERE cm.source_uri = $1
                  AND e.code = $2
                  AND ($3::text IS NULL OR cm.target_uri = $3)
                {_EDGE_ORDER}
            """, source_system, code, target_system)
            return [self._edge_from_row(row) for row in rows]

    async def find_edges_to(self, target_system: str, code: str) -> list[MappingEdge]:
        async with self._connection() as conn:
            rows = await conn.fetch(f"""
                {_EDGE_SELECT}
                WHERE cm.target_uri = $1
                  AND t.code = $2
                {_EDGE_ORDER}
            """, target_system, code)
            return [self._edge_from_row(row) for row in rows]

    @staticmethod
    def _edge_from_row(row) -> MappingEdge:
        return MappingEdge(
            concept_map_url=row["concept_map_url"],
            map_source_uri=row["source_uri"],
            map_target_uri=row["target_uri"],
            source_code=row["element_code"],
            source_display=row["element_display"],
            target_code=row["target_code"],
            target_display=row["target_display"],
            equivalence=Equivalence(row["equivalence"]),
            comment=row["comment"],
            depends_on=tuple(
                DependsOn(**d) for d in (_json_value(row["depends_on"]) or [])
            ),
            group_source=row["group_source"],
            group_target=row["group_target"],
        )

    async def find_concept_map(self, url: str) -> ConceptMap | None:
        return await self._load_concept_map("url", url)

    async def find_concept_map_by_id(self, id: str) -> ConceptMap | None:
        return await self._load_concept_map("id", id)

    async def _load_concept_map(self, column: str, value: str) -> ConceptMap | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(f"""
                SELECT id, url, name, title, version, status, description, publisher,
                       source_uri, target_uri
                FROM concept_maps
                WHERE {column} = $1
            """, value)
            if not row:
                return None
            return await self._assemble_concept_map(conn, row)

    async def _assemble_concept_map(self, conn, row) -> ConceptMap:
        """Rebuild the group/element/target tree of one ConceptMap."""
        rows = await conn.fetch("""
            SELECT g.id AS group_id, g.source, g.target,
                   e.id AS element_id, e.code AS element_code, e.display AS element_display,
                   t.code AS target_code, t.display AS target_display,
                   t.equivalence, t.comment, t.depends_on
            FROM mapping_groups g
            LEFT JOIN mapping_elements e ON e.group_id = g.id
            LEFT JOIN mapping_targets t ON t.element_id = e.id
            WHERE g.concept_map_id = $1
            ORDER BY g.position, e.id, t.id
        """, row["id"])

        groups: dict[int, MappingGroup] = {}
        elements: dict[int, MappingElement] = {}
        for r in rows:
            group = groups.get(r["group_id"])
            if group is None:
                group = MappingGroup(source=r["source"], target=r["target"])
                groups[r["group_id"]] = group
            if r["element_id"] is None:
                continue
            element = elements.get(r["element_id"])
            if element is None:
                element = MappingElement(code=r["element_code"], display=r["element_display"])
                elements[r["element_id"]] = element
                group.elements.append(element)
            if r["target_code"] is not None:
                element.targets.append(MappingTarget(
                    code=r["target_code"],
                    display=r["target_display"],
                    equivalence=Equivalence(r["equivalence"]),
                    comment=r["comment"],
                    depends_on=[DependsOn(**d) for d in (_json_value(r["depends_on"]) or [])],
                ))

        return ConceptMap(**dict(row), groups=list(groups.values()))

    async def list_concept_maps(
        self,
        source_uri: str | None = None,
        target_uri: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ConceptMap]:
        async with self._connection() as conn:
            rows = await conn.fetch("""
                SELECT id, url, name, title, version, status, description, publisher,
                       source_uri, target_uri
                FROM concept_maps
                WHERE ($1::text IS NULL OR source_uri = $1)
                  AND ($2::text IS NULL OR target_uri = $2)
                ORDER BY created_at, url
                LIMIT $3 OFFSET $4
            """, source_uri, target_uri, limit, offset)
            return [await self._assemble_concept_map(conn, row) for row in rows]

    async def create_concept_map(self, concept_map: ConceptMap) -> ConceptMap:
        stored = concept_map.model_copy(update={"id": concept_map.id or str(uuid4())})

        try:
            async with self._connection() as conn:
                async with conn.transaction():
                    await conn.execute("""
                        INSERT INTO concept_maps
                            (id, url, name, title, version, status, description, publisher,
                             source_uri, target_uri)
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                    """, stored.id, stored.url, stored.name, stored.title, stored.version,
                        stored.status, stored.description, stored.publisher,
                        stored.source_uri, stored.target_uri)

                    for position, group in enumerate(stored.groups):
                        group_id = await conn.fetchval("""
                            INSERT INTO mapping_groups (concept_map_id, position, source, target)
                            VALUES ($1, $2, $3, $4)
                            RETURNING id
                        """, stored.id, position, group.source, group.target)
                        for element in group.elements:
                            element_id = await conn.fetchval("""
                                INSERT INTO mapping_elements (group_id, code, display)
                                VALUES ($1, $2, $3)
                                RETURNING id
                            """, group_id, element.code, element.display)
                            for target in element.targets:
                                await conn.execute("""
                                    INSERT INTO mapping_targets
                                        (element_id, code, display, equivalence, comment, depends_on)
                                    VALUES ($1, $2, $3, $4, $5, $6::jsonb)
                                """, element_id, target.code, target.display,
                                    target.equivalence.value, target.comment,
                                    json.dumps([d.model_dump() for d in target.depends_on]))
        except asyncpg.UniqueViolationError as e:
            raise DuplicateResource(f"ConceptMap with URL {stored.url} already exists") from e

        logger.info(
            "ConceptMap created",
            url=stored.url,
            source=stored.source_uri,
            target=stored.target_uri,
            edges=stored.edge_count(),
        )
        return stored

    # =========================================================================
    # ValueSets
    # =========================================================================

    @staticmethod
    def _value_set_from_row(row) -> ValueSet:
        data = dict(row)
        includes = _json_value(data.pop("includes")) or []
        return ValueSet(**data, includes=[ValueSetInclude(**i) for i in includes])

    async def find_value_set(self, url: str) -> ValueSet | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("""
                SELECT id, url, name, title, version, status, description, publisher, includes
                FROM value_sets
                WHERE url = $1
            """, url)
            return self._value_set_from_row(row) if row else None

    async def find_value_set_by_id(self, id: str) -> ValueSet | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("""
                SELECT id, url, name, title, version, status, description, publisher, includes
                FROM value_sets
                WHERE id = $1
            """, id)
            return self._value_set_from_row(row) if row else None

    async def list_value_sets(
        self,
        name: str | None = None,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ValueSet]:
        async with self._connection() as conn:
            rows = await conn.fetch("""
                SELECT id, url, name, title, version, status, description, publisher, includes
                FROM value_sets
                WHERE ($1::text IS NULL OR name ILIKE $1)
                  AND ($2::text IS NULL OR status = $2)
                ORDER BY created_at, url
                LIMIT $3 OFFSET $4
            """, like_pattern(name) if name else None, status, limit, offset)
            return [self._value_set_from_row(row) for row in rows]

    async def create_value_set(self, value_set: ValueSet) -> ValueSet:
        stored = value_set.model_copy(update={"id": value_set.id or str(uuid4())})

        try:
            async with self._connection() as conn:
                await conn.execute("""
                    INSERT INTO value_sets
                        (id, url, name, title, version, status, description, publisher, includes)
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb)
                """, stored.id, stored.url, stored.name, stored.title, stored.version,
                    stored.status, stored.description, stored.publisher,
                    json.dumps([i.model_dump() for i in stored.includes]))
        except asyncpg.UniqueViolationError as e:
            raise DuplicateResource(f"ValueSet with URL {stored.url} already exists") from e

        logger.info("ValueSet created", url=stored.url, includes=len(stored.includes))
        return stored
