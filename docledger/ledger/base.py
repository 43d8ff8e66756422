from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RegistrationRecord:
    certificate_number: str
    document_hash: str
    timestamp: int


@dataclass(frozen=True)
class Registration:
    """Result of a successful register call: the stored record plus its tx id."""

    record: RegistrationRecord
    tx_hash: str


@dataclass(frozen=True)
class VerifyResult:
    matches: bool
    timestamp: int


NOT_REGISTERED = VerifyResult(matches=False, timestamp=0)


class LedgerRegistry(ABC):
    """Append-only registry mapping certificate numbers to document hashes.

    Records are immutable once written; registering an existing certificate
    number raises AlreadyExists. Transport failures raise RegistryUnavailable.
    """

    name = "ledger"

    @abstractmethod
    def register(self, certificate_number: str, document_hash: str) -> Registration: ...

    @abstractmethod
    def lookup(self, certificate_number: str) -> RegistrationRecord | None: ...

    @abstractmethod
    def verify(self, certificate_number: str, document_hash: str) -> VerifyResult: ...

    def describe(self) -> dict:
        return {"backend": self.name}

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()
