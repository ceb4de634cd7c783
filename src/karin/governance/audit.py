"""Tenant-scoped, hash-chained audit trail for Ley Karin case actions.

Every tenant gets its own JSONL file and its own chain, seeded from the
tenant id. An entry's hash covers its position, the previous hash and the
event, so editing, reordering or dropping a line fails verification for
that tenant without touching anyone else's chain.
"""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from pydantic import BaseModel, ValidationError

from karin.core.config import AuditConfig
from karin.core.types import AuditEvent

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")
_EXACT_MATCH_KEYS = ("tenant_id", "actor", "action", "resource")


class AuditEntry(BaseModel):
    """One line of a tenant's audit file."""

    model_config = {"frozen": True}

    sequence: int
    previous_hash: str
    entry_hash: str
    event: AuditEvent


class AuditLogger:
    """Append-only audit log with one hash chain per tenant.

    Args:
        config: AuditConfig instance. Defaults to AuditConfig() which reads
            from environment variables.
    """

    def __init__(self, config: AuditConfig | None = None) -> None:
        self._config = config or AuditConfig()
        if self._config.hash_algorithm not in hashlib.algorithms_available:
            raise ValueError(
                f"Unsupported audit hash algorithm {self._config.hash_algorithm!r}"
            )
        self._log_dir = Path(self._config.log_dir)
        self._log_dir.mkdir(parents=True, exist_ok=True)
        # tenant id -> (next sequence, head hash), filled lazily from disk
        self._heads: dict[str, tuple[int, str]] = {}

    def log_path(self, tenant_id: str) -> Path:
        safe = _UNSAFE_FILENAME_CHARS.sub("_", tenant_id) or "_"
        return self._log_dir / f"{safe}.jsonl"

    def head_hash(self, tenant_id: str) -> str:
        return self._head(tenant_id)[1]

    # -- Hashing --

    def _digest(self, *parts: str) -> str:
        h = hashlib.new(self._config.hash_algorithm)
        for part in parts:
            h.update(part.encode("utf-8"))
        return h.hexdigest()

    def _seed(self, tenant_id: str) -> str:
        return self._digest("karin-genesis:", tenant_id)

    def _entry_hash(self, previous_hash: str, sequence: int, event: AuditEvent) -> str:
        return self._digest(previous_hash, str(sequence), event.model_dump_json())

    def _head(self, tenant_id: str) -> tuple[int, str]:
        if tenant_id not in self._heads:
            head = (0, self._seed(tenant_id))
            for entry in self._read(self.log_path(tenant_id)):
                head = (entry.sequence + 1, entry.entry_hash)
            self._heads[tenant_id] = head
        return self._heads[tenant_id]

    # -- Writing --

    def log(self, event: AuditEvent) -> AuditEntry:
        """Append ``event`` to its tenant's chain."""
        sequence, previous_hash = self._head(event.tenant_id)
        entry = AuditEntry(
            sequence=sequence,
            previous_hash=previous_hash,
            entry_hash=self._entry_hash(previous_hash, sequence, event),
            event=event,
        )
        with open(self.log_path(event.tenant_id), "a") as fh:
            fh.write(entry.model_dump_json() + "\n")

        self._heads[event.tenant_id] = (sequence + 1, entry.entry_hash)
        logger.debug(
            "Audit %s on %s for tenant %s (#%d)",
            event.action,
            event.resource,
            event.tenant_id,
            sequence,
        )
        return entry

    # -- Reading --

    @staticmethod
    def _read(path: Path) -> Iterator[AuditEntry]:
        if not path.exists():
            return
        with open(path) as fh:
            for line in fh:
                if line.strip():
                    yield AuditEntry.model_validate_json(line)

    def _paths(self, tenant_id: str | None) -> list[Path]:
        if tenant_id is not None:
            return [self.log_path(tenant_id)]
        return sorted(self._log_dir.glob("*.jsonl"))

    def verify_chain(self, tenant_id: str | None = None) -> bool:
        """Recompute the chain of one tenant, or of every tenant on disk."""
        return all(self._verify_file(path) for path in self._paths(tenant_id))

    def _verify_file(self, path: Path) -> bool:
        previous_hash: str | None = None
        try:
            for expected_sequence, entry in enumerate(self._read(path)):
                tenant_id = entry.event.tenant_id
                if previous_hash is None:
                    previous_hash = self._seed(tenant_id)
                if (
                    path != self.log_path(tenant_id)
                    or entry.sequence != expected_sequence
                    or entry.previous_hash != previous_hash
                    or entry.entry_hash
                    != self._entry_hash(previous_hash, entry.sequence, entry.event)
                ):
                    logger.warning(
                        "Audit chain broken in %s at line %d", path, expected_sequence + 1
                    )
                    return False
                previous_hash = entry.entry_hash
        except ValidationError:
            logger.warning("Unreadable audit entry in %s", path)
            return False
        return True

    def query(self, filters: dict[str, Any] | None = None) -> list[AuditEvent]:
        """Audit events matching ``filters``, oldest first.

        Supported filter keys:
            - ``tenant_id``, ``actor``, ``action``, ``resource``: exact match
            - ``after`` / ``before``: datetimes or ISO strings, exclusive
        """
        filters = filters or {}
        after = _as_bound(filters.get("after"))
        before = _as_bound(filters.get("before"))

        events: list[AuditEvent] = []
        for path in self._paths(filters.get("tenant_id")):
            for entry in self._read(path):
                event = entry.event
                if any(
                    key in filters and getattr(event, key) != filters[key]
                    for key in _EXACT_MATCH_KEYS
                ):
                    continue
                if after is not None and event.timestamp <= after:
                    continue
                if before is not None and event.timestamp >= before:
                    continue
                events.append(event)
        return sorted(events, key=lambda e: e.timestamp)

    def case_history(self, case_id: str, tenant_id: str | None = None) -> list[AuditEvent]:
        """Every recorded action on one case, oldest first."""
        filters: dict[str, Any] = {"resource": f"case:{case_id}"}
        if tenant_id is not None:
            filters["tenant_id"] = tenant_id
        return self.query(filters)


def _as_bound(value: datetime | str | None) -> datetime | None:
    if value is None:
        return None
    bound = value if isinstance(value, datetime) else datetime.fromisoformat(value)
    if bound.tzinfo is None:
        bound = bound.replace(tzinfo=timezone.utc)
    return bound
