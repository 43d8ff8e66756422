"""Append-only JSON-lines ledger that mirrors the DocumentRegistry contract.

Used for development and tests when no Algorand node is available. Each
accepted registration is one line in the log; the log is replayed on open.
"""

import hashlib
import json
import logging
import threading
import time
from pathlib import Path
from typing import Callable

from ..errors import AlreadyExists
from .base import NOT_REGISTERED, LedgerRegistry, Registration, RegistrationRecord, VerifyResult

logger = logging.getLogger(__name__)

Listener = Callable[[Registration], None]


class LocalRegistry(LedgerRegistry):
    name = "local"

    def __init__(self, path: str | Path, clock: Callable[[], float] = time.time) -> None:
        self.path = Path(path)
        self.clock = clock
        self._records: dict[str, RegistrationRecord] = {}
        self._listeners: list[Listener] = []
        # Stands in for the chain's single global execution order
        self._lock = threading.Lock()
        self._replay()

    def _replay(self) -> None:
        if not self.path.exists():
            return
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                entry = json.loads(line)
                record = RegistrationRecord(
                    certificate_number=entry["certificateNumber"],
                    document_hash=entry["documentHash"],
                    timestamp=int(entry["timestamp"]),
                )
                self._records[record.certificate_number] = record
        logger.info(f"[CHAIN] Replayed {len(self._records)} record(s) from {self.path}")

    def subscribe(self, listener: Listener) -> None:
        """Register a callback fired after every successful registration."""
        self._listeners.append(listener)

    def register(self, certificate_number: str, document_hash: str) -> Registration:
        with self._lock:
            if certificate_number in self._records:
                raise AlreadyExists(
                    "Document with this certificate number already exists",
                    details=certificate_number,
                )
            record = RegistrationRecord(
                certificate_number=certificate_number,
                document_hash=document_hash,
                timestamp=int(self.clock()),
            )
            line = json.dumps(
                {
                    "certificateNumber": record.certificate_number,
                    "documentHash": record.document_hash,
                    "timestamp": record.timestamp,
                },
                sort_keys=True,
            )
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
            self._records[certificate_number] = record
            registration = Registration(
                record=record,
                tx_hash=hashlib.sha256(line.encode("utf-8")).hexdigest(),
            )

        logger.info(
            f"[CHAIN] DocumentRegistered {certificate_number} "
            f"hash={document_hash[:12]}... tx={registration.tx_hash[:12]}..."
        )
        for listener in self._listeners:
            listener(registration)
        return registration

    def lookup(self, certificate_number: str) -> RegistrationRecord | None:
        return self._records.get(certificate_number)

    def verify(self, certificate_number: str, document_hash: str) -> VerifyResult:
        record = self._records.get(certificate_number)
        if record is None:
            return NOT_REGISTERED
        return VerifyResult(matches=record.document_hash == document_hash, timestamp=record.timestamp)

    def describe(self) -> dict:
        return {"backend": self.name, "path": str(self.path), "records": len(self._records)}
