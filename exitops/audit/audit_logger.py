"""
Audit Logging Module.

This module provides the append-only action ledger every offboarding
action is written to. The ledger is a single JSON file holding an ordered
array of action records; it is created as ``[]`` when absent and never
truncated, so successive runs append to the same history.
"""

import fcntl
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections import Counter
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from ..models import ActionRecord, GrantKind, Outcome

logger = logging.getLogger(__name__)


class AuditSink(ABC):
    """Append-only destination for action records."""

    def __init__(self):
        self.records: List[ActionRecord] = []

    @abstractmethod
    def append(self, record: ActionRecord) -> ActionRecord:
        """Persist a record. Records are never mutated or removed afterwards."""

    def record(
        self,
        module: str,
        target: str,
        message: str,
        outcome: Outcome,
        simulate: bool = False,
        run_id: Optional[str] = None,
        kind: Optional[GrantKind] = None,
        resource_id: Optional[str] = None,
    ) -> ActionRecord:
        """
        Build and append a record.

        In simulate mode every outcome except FAILURE is written as SIMULATED;
        failures are never masked because some are local validation errors.
        """
        if simulate and outcome != Outcome.FAILURE:
            outcome = Outcome.SIMULATED

        entry = ActionRecord(
            run_id=run_id,
            module=module,
            target=target,
            message=message,
            outcome=outcome,
            simulate=simulate,
            kind=kind,
            resource_id=resource_id,
        )
        return self.append(entry)


class AuditLogger(AuditSink):
    """
    JSON-array ledger on the local file system.

    Each append takes an exclusive lock on ``<ledger>.lock``, re-reads the
    array and replaces the file atomically, so a reader tailing the ledger
    only ever sees complete documents and concurrent writers cannot drop
    each other's records. With no ledger path records are kept in memory.
    """

    def __init__(self, ledger_path: Optional[Union[str, Path]] = None):
        """
        Initialize the audit logger.

        Args:
            ledger_path: JSON ledger file. If None, records are kept in memory only.
        """
        super().__init__()
        self.ledger_path = Path(ledger_path) if ledger_path else None

        if self.ledger_path:
            self.ledger_path.parent.mkdir(parents=True, exist_ok=True)
            with self._locked():
                if not self.ledger_path.exists() or self.ledger_path.stat().st_size == 0:
                    self._write_all([])

        logger.info(
            f"Initialized AuditLogger with {'ledger ' + str(self.ledger_path) if self.ledger_path else 'in-memory'} storage"
        )

    @property
    def lock_path(self) -> Path:
        return self.ledger_path.with_name(self.ledger_path.name + ".lock")

    @contextmanager
    def _locked(self) -> Iterator[None]:
        with open(self.lock_path, "a", encoding="utf-8") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _read_all(self) -> List[Dict[str, Any]]:
        with open(self.ledger_path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"Audit ledger {self.ledger_path} is not a JSON array")
        return data

    def _write_all(self, entries: List[Dict[str, Any]]) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.ledger_path.parent), prefix=".audit-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entries, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.ledger_path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def append(self, record: ActionRecord) -> ActionRecord:
        """
        Append a record to the ledger.

        Args:
            record: The action record to persist

        Returns:
            The record that was written
        """
        if self.ledger_path:
            try:
                with self._locked():
                    entries = self._read_all()
                    entries.append(record.model_dump(mode="json"))
                    self._write_all(entries)
            except Exception as e:
                logger.error(f"Failed to append audit record: {e}")
                raise

        self.records.append(record)
        log = logger.error if record.outcome == Outcome.FAILURE else logger.info
        log(f"[{record.outcome.value}] [{record.module}] {record.message}")
        return record

    def get_records(
        self,
        module: Optional[str] = None,
        outcome: Optional[Outcome] = None,
        run_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[ActionRecord]:
        """
        Read records back from the ledger, oldest first.

        Args:
            module: Filter by module name
            outcome: Filter by outcome tag
            run_id: Filter by run identifier
            limit: Return at most this many of the most recent matches

        Returns:
            List of matching ActionRecords
        """
        if self.ledger_path:
            with self._locked():
                raw = self._read_all()
            source = [ActionRecord(**entry) for entry in raw]
        else:
            source = list(self.records)

        results = [
            r for r in source
            if (module is None or r.module == module)
            and (outcome is None or r.outcome == outcome)
            and (run_id is None or r.run_id == run_id)
        ]
        if limit is not None:
            results = results[-limit:] if limit > 0 else []
        return results

    def generate_summary(self, run_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Summarise the ledger (or one run of it) by outcome.

        Returns:
            Dictionary with totals and the failure messages
        """
        records = self.get_records(run_id=run_id)
        counts = Counter(r.outcome for r in records)

        return {
            "run_id": run_id,
            "total": len(records),
            "successful": counts.get(Outcome.SUCCESS, 0),
            "simulated": counts.get(Outcome.SIMULATED, 0),
            "failed": counts.get(Outcome.FAILURE, 0),
            "info": counts.get(Outcome.INFO, 0),
            "failures": [
                {"module": r.module, "target": r.target, "message": r.message}
                for r in records if r.outcome == Outcome.FAILURE
            ],
            "ledger": str(self.ledger_path) if self.ledger_path else None,
        }
