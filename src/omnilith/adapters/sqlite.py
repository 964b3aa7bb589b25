"""
SQLite store: every kernel port over one sqlite3 connection.

One file holds organisms, states, composition edges, relationships,
visibility, proposals and the event log. Payloads are stored as JSON text.

Storage enforces what the kernel cannot guarantee under concurrent writers:
    - UNIQUE(organism_id, sequence_number) on states
    - one composition row per child (child_id is the primary key)
    - proposal resolution only updates rows still marked open
"""
from __future__ import annotations

import json
import sqlite3
from typing import Any, List, Optional

from ..content_types import default_registry, surfaced_organism_ids
from ..content_types.spatial_map import spatial_map
from ..kernel.contracts import ContentTypeRegistry
from ..kernel.identity import IdentityGenerator, UuidIdentityGenerator
from ..kernel.ports import KernelDeps
from ..kernel.schema import (
    CompositionRecord,
    DomainEvent,
    EventType,
    Organism,
    OrganismState,
    Proposal,
    ProposalStatus,
    Relationship,
    RelationshipType,
    VisibilityRecord,
    decode_mutation,
    encode_mutation,
)


class SqliteStore:
    def __init__(self, path: str) -> None:
        self._path = path
        self._conn = sqlite3.connect(path)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

        self.organisms = SqliteOrganismRepository(self._conn)
        self.states = SqliteStateRepository(self._conn)
        self.compositions = SqliteCompositionRepository(self._conn)
        self.relationships = SqliteRelationshipRepository(self._conn)
        self.visibility = SqliteVisibilityRepository(self._conn)
        self.surfaces = SqliteSurfaceRepository(self._conn)
        self.proposals = SqliteProposalRepository(self._conn)
        self.events = SqliteEventRepository(self._conn)

    @property
    def path(self) -> str:
        return self._path

    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS organisms (
                id TEXT PRIMARY KEY,
                name TEXT,
                created_by TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                open_trunk INTEGER NOT NULL DEFAULT 0,
                forked_from_id TEXT
            )
            """
        )

        # Append-only history; storage serializes concurrent appends
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS states (
                id TEXT PRIMARY KEY,
                organism_id TEXT NOT NULL,
                content_type_id TEXT NOT NULL,
                payload_json TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                created_by TEXT NOT NULL,
                sequence_number INTEGER NOT NULL,
                parent_state_id TEXT,
                UNIQUE (organism_id, sequence_number)
            )
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_states_content_type
            ON states(content_type_id)
            """
        )

        # Keyed by child: single parent per organism
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS compositions (
                child_id TEXT PRIMARY KEY,
                parent_id TEXT NOT NULL,
                composed_at INTEGER NOT NULL,
                composed_by TEXT NOT NULL,
                position INTEGER
            )
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_compositions_parent
            ON compositions(parent_id)
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS relationships (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                user_id TEXT NOT NULL,
                organism_id TEXT NOT NULL,
                role TEXT,
                created_at INTEGER NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_relationships_user_organism
            ON relationships(user_id, organism_id)
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS visibility (
                organism_id TEXT PRIMARY KEY,
                level TEXT NOT NULL,
                updated_at INTEGER NOT NULL
            )
            """
        )

        # Mutations are stored in their (content type id, payload) encoding
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS proposals (
                id TEXT PRIMARY KEY,
                organism_id TEXT NOT NULL,
                proposed_content_type_id TEXT NOT NULL,
                proposed_payload_json TEXT NOT NULL,
                description TEXT,
                proposed_by TEXT NOT NULL,
                status TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                resolved_at INTEGER,
                resolved_by TEXT,
                decline_reason TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_proposals_organism
            ON proposals(organism_id, status)
            """
        )

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS events (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                organism_id TEXT NOT NULL,
                actor_id TEXT NOT NULL,
                occurred_at INTEGER NOT NULL,
                payload_json TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_events_organism_type
            ON events(organism_id, type)
            """
        )

        self._conn.commit()

    def deps(
        self,
        content_types: Optional[ContentTypeRegistry] = None,
        identity: Optional[IdentityGenerator] = None,
        enforce_surfacing: bool = True,
    ) -> KernelDeps:
        """Bundle this store's repositories into a KernelDeps."""
        return KernelDeps(
            organisms=self.organisms,
            states=self.states,
            compositions=self.compositions,
            relationships=self.relationships,
            visibility=self.visibility,
            proposals=self.proposals,
            content_types=content_types or default_registry(),
            events=self.events,
            identity=identity or UuidIdentityGenerator(),
            surfaces=self.surfaces if enforce_surfacing else None,
            event_log=self.events,
        )

    def close(self) -> None:
        self._conn.close()


class _Repository:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn


class SqliteOrganismRepository(_Repository):
    @staticmethod
    def _to_model(row: sqlite3.Row) -> Organism:
        return Organism(
            id=row["id"],
            name=row["name"],
            created_by=row["created_by"],
            created_at=row["created_at"],
            open_trunk=bool(row["open_trunk"]),
            forked_from_id=row["forked_from_id"],
        )

    def find_by_id(self, organism_id: str) -> Optional[Organism]:
        cur = self._conn.cursor()
        cur.execute("SELECT * FROM organisms WHERE id = ?", (organism_id,))
        row = cur.fetchone()
        if not row:
            return None
        return self._to_model(row)

    def exists(self, organism_id: str) -> bool:
        cur = self._conn.cursor()
        cur.execute("SELECT 1 FROM organisms WHERE id = ?", (organism_id,))
        return cur.fetchone() is not None

    def save(self, organism: Organism) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            INSERT INTO organisms (id, name, created_by, created_at, open_trunk, forked_from_id)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name,
                open_trunk=excluded.open_trunk,
                forked_from_id=excluded.forked_from_id
            """,
            (
                organism.id,
                organism.name,
                organism.created_by,
                organism.created_at,
                int(organism.open_trunk),
                organism.forked_from_id,
            ),
        )
        self._conn.commit()

    def find_all(self) -> List[Organism]:
        cur = self._conn.cursor()
        cur.execute("SELECT * FROM organisms ORDER BY created_at, id")
        return [self._to_model(row) for row in cur.fetchall()]


class SqliteStateRepository(_Repository):
    @staticmethod
    def _to_model(row: sqlite3.Row) -> OrganismState:
        return OrganismState(
            id=row["id"],
            organism_id=row["organism_id"],
            content_type_id=row["content_type_id"],
            payload=json.loads(row["payload_json"]),
            created_at=row["created_at"],
            created_by=row["created_by"],
            sequence_number=row["sequence_number"],
            parent_state_id=row["parent_state_id"],
        )

    def append(self, state: OrganismState) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            INSERT INTO states (
                id,
                organism_id,
                content_type_id,
                payload_json,
                created_at,
                created_by,
                sequence_number,
                parent_state_id
            ) VALUES (?, ?, ?, json(?), ?, ?, ?, ?)
            """,
            (
                state.id,
                state.organism_id,
                state.content_type_id,
                json.dumps(state.payload),
                state.created_at,
                state.created_by,
                state.sequence_number,
                state.parent_state_id,
            ),
        )
        self._conn.commit()

    def find_by_id(self, state_id: str) -> Optional[OrganismState]:
        cur = self._conn.cursor()
        cur.execute("SELECT * FROM states WHERE id = ?", (state_id,))
        row = cur.fetchone()
        if not row:
            return None
        return self._to_model(row)

    def find_current_by_organism_id(self, organism_id: str) -> Optional[OrganismState]:
        cur = self._conn.cursor()
        cur.execute(
            """
            SELECT * FROM states
            WHERE organism_id = ?
            ORDER BY sequence_number DESC
            LIMIT 1
            """,
            (organism_id,),
        )
        row = cur.fetchone()
        if not row:
            return None
        return self._to_model(row)

    def find_history_by_organism_id(self, organism_id: str) -> List[OrganismState]:
        cur = self._conn.cursor()
        cur.execute(
            "SELECT * FROM states WHERE organism_id = ? ORDER BY sequence_number",
            (organism_id,),
        )
        return [self._to_model(row) for row in cur.fetchall()]


class SqliteCompositionRepository(_Repository):
    @staticmethod
    def _to_model(row: sqlite3.Row) -> CompositionRecord:
        return CompositionRecord(
            parent_id=row["parent_id"],
            child_id=row["child_id"],
            composed_at=row["composed_at"],
            composed_by=row["composed_by"],
            position=row["position"],
        )

    def find_parent(self, child_id: str) -> Optional[CompositionRecord]:
        cur = self._conn.cursor()
        cur.execute("SELECT * FROM compositions WHERE child_id = ?", (child_id,))
        row = cur.fetchone()
        if not row:
            return None
        return self._to_model(row)

    def find_children(self, parent_id: str) -> List[CompositionRecord]:
        cur = self._conn.cursor()
        cur.execute(
            "SELECT * FROM compositions WHERE parent_id = ? ORDER BY composed_at, rowid",
            (parent_id,),
        )
        return [self._to_model(row) for row in cur.fetchall()]

    def save(self, record: CompositionRecord) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            INSERT INTO compositions (child_id, parent_id, composed_at, composed_by, position)
            VALUES (?, ?, ?, ?, ?)
            """,
            (record.child_id, record.parent_id, record.composed_at, record.composed_by, record.position),
        )
        self._conn.commit()

    def delete(self, parent_id: str, child_id: str) -> None:
        cur = self._conn.cursor()
        cur.execute(
            "DELETE FROM compositions WHERE parent_id = ? AND child_id = ?",
            (parent_id, child_id),
        )
        self._conn.commit()


class SqliteRelationshipRepository(_Repository):
    @staticmethod
    def _to_model(row: sqlite3.Row) -> Relationship:
        return Relationship(
            id=row["id"],
            type=row["type"],
            user_id=row["user_id"],
            organism_id=row["organism_id"],
            role=row["role"],
            created_at=row["created_at"],
        )

    def find_by_user_and_organism(self, user_id: str, organism_id: str) -> List[Relationship]:
        cur = self._conn.cursor()
        cur.execute(
            "SELECT * FROM relationships WHERE user_id = ? AND organism_id = ? ORDER BY created_at",
            (user_id, organism_id),
        )
        return [self._to_model(row) for row in cur.fetchall()]

    def find_by_user(self, user_id: str) -> List[Relationship]:
        cur = self._conn.cursor()
        cur.execute("SELECT * FROM relationships WHERE user_id = ? ORDER BY created_at", (user_id,))
        return [self._to_model(row) for row in cur.fetchall()]

    def find_by_organism(
        self, organism_id: str, type: Optional[RelationshipType] = None
    ) -> List[Relationship]:
        cur = self._conn.cursor()
        if type is None:
            cur.execute(
                "SELECT * FROM relationships WHERE organism_id = ? ORDER BY created_at",
                (organism_id,),
            )
        else:
            cur.execute(
                "SELECT * FROM relationships WHERE organism_id = ? AND type = ? ORDER BY created_at",
                (organism_id, RelationshipType(type).value),
            )
        return [self._to_model(row) for row in cur.fetchall()]

    def save(self, relationship: Relationship) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            INSERT INTO relationships (id, type, user_id, organism_id, role, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                type=excluded.type,
                role=excluded.role
            """,
            (
                relationship.id,
                relationship.type.value,
                relationship.user_id,
                relationship.organism_id,
                relationship.role.value if relationship.role is not None else None,
                relationship.created_at,
            ),
        )
        self._conn.commit()


class SqliteVisibilityRepository(_Repository):
    def find_by_organism_id(self, organism_id: str) -> Optional[VisibilityRecord]:
        cur = self._conn.cursor()
        cur.execute("SELECT * FROM visibility WHERE organism_id = ?", (organism_id,))
        row = cur.fetchone()
        if not row:
            return None
        return VisibilityRecord(
            organism_id=row["organism_id"],
            level=row["level"],
            updated_at=row["updated_at"],
        )

    def save(self, record: VisibilityRecord) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            INSERT INTO visibility (organism_id, level, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(organism_id) DO UPDATE SET
                level=excluded.level,
                updated_at=excluded.updated_at
            """,
            (record.organism_id, record.level.value, record.updated_at),
        )
        self._conn.commit()


class SqliteSurfaceRepository(_Repository):
    """Surfacing derived from the current state of every spatial map."""

    def list_surfaced_organism_ids(self) -> List[str]:
        cur = self._conn.cursor()
        cur.execute(
            """
            SELECT s.organism_id, s.payload_json FROM states s
            WHERE s.content_type_id = ?
              AND s.sequence_number = (
                  SELECT MAX(sequence_number) FROM states WHERE organism_id = s.organism_id
              )
            """,
            (spatial_map.type_id,),
        )
        surfaced = set()
        for row in cur.fetchall():
            surfaced.update(surfaced_organism_ids(row["organism_id"], json.loads(row["payload_json"])))
        return sorted(surfaced)

    def is_surfaced(self, organism_id: str) -> bool:
        return organism_id in self.list_surfaced_organism_ids()


class SqliteProposalRepository(_Repository):
    @staticmethod
    def _to_model(row: sqlite3.Row) -> Proposal:
        return Proposal(
            id=row["id"],
            organism_id=row["organism_id"],
            mutation=decode_mutation(row["proposed_content_type_id"], json.loads(row["proposed_payload_json"])),
            description=row["description"],
            proposed_by=row["proposed_by"],
            status=row["status"],
            created_at=row["created_at"],
            resolved_at=row["resolved_at"],
            resolved_by=row["resolved_by"],
            decline_reason=row["decline_reason"],
        )

    def _select(self, where: str, params: tuple) -> List[Proposal]:
        cur = self._conn.cursor()
        cur.execute(f"SELECT * FROM proposals WHERE {where} ORDER BY created_at, id", params)
        return [self._to_model(row) for row in cur.fetchall()]

    def find_by_id(self, proposal_id: str) -> Optional[Proposal]:
        found = self._select("id = ?", (proposal_id,))
        return found[0] if found else None

    def save(self, proposal: Proposal) -> None:
        content_type_id, payload = encode_mutation(proposal.mutation)
        cur = self._conn.cursor()
        cur.execute(
            """
            INSERT INTO proposals (
                id,
                organism_id,
                proposed_content_type_id,
                proposed_payload_json,
                description,
                proposed_by,
                status,
                created_at,
                resolved_at,
                resolved_by,
                decline_reason
            ) VALUES (?, ?, ?, json(?), ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                proposal.id,
                proposal.organism_id,
                content_type_id,
                json.dumps(payload),
                proposal.description,
                proposal.proposed_by,
                proposal.status.value,
                proposal.created_at,
                proposal.resolved_at,
                proposal.resolved_by,
                proposal.decline_reason,
            ),
        )
        self._conn.commit()

    def update(self, proposal: Proposal) -> bool:
        cur = self._conn.cursor()
        cur.execute(
            """
            UPDATE proposals SET
                status = ?,
                resolved_at = ?,
                resolved_by = ?,
                decline_reason = ?
            WHERE id = ? AND status = ?
            """,
            (
                proposal.status.value,
                proposal.resolved_at,
                proposal.resolved_by,
                proposal.decline_reason,
                proposal.id,
                ProposalStatus.OPEN.value,
            ),
        )
        self._conn.commit()
        return cur.rowcount == 1

    def find_by_organism_id(self, organism_id: str) -> List[Proposal]:
        return self._select("organism_id = ?", (organism_id,))

    def find_open_by_organism_id(self, organism_id: str) -> List[Proposal]:
        return self._select("organism_id = ? AND status = ?", (organism_id, ProposalStatus.OPEN.value))

    def find_by_proposer(self, user_id: str) -> List[Proposal]:
        return self._select("proposed_by = ?", (user_id,))


class SqliteEventRepository(_Repository):
    """Event publisher and event log over the events table."""

    def publish(self, event: DomainEvent) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            INSERT INTO events (id, type, organism_id, actor_id, occurred_at, payload_json)
            VALUES (?, ?, ?, ?, ?, json(?))
            """,
            (
                event.id,
                event.type.value,
                event.organism_id,
                event.actor_id,
                event.occurred_at,
                json.dumps(event.payload),
            ),
        )
        self._conn.commit()

    def find_by_organism_id(
        self, organism_id: str, type: Optional[EventType] = None
    ) -> List[DomainEvent]:
        cur = self._conn.cursor()
        if type is None:
            cur.execute(
                "SELECT * FROM events WHERE organism_id = ? ORDER BY occurred_at, rowid",
                (organism_id,),
            )
        else:
            cur.execute(
                "SELECT * FROM events WHERE organism_id = ? AND type = ? ORDER BY occurred_at, rowid",
                (organism_id, EventType(type).value),
            )
        return [self._to_model(row) for row in cur.fetchall()]

    @staticmethod
    def _to_model(row: sqlite3.Row) -> DomainEvent:
        payload: Any = json.loads(row["payload_json"])
        return DomainEvent(
            id=row["id"],
            type=row["type"],
            organism_id=row["organism_id"],
            actor_id=row["actor_id"],
            occurred_at=row["occurred_at"],
            payload=payload,
        )
