"""Client for the DocumentRegistry application on Algorand.

Writes go through an atomic group (box MBR payment + ABI call) signed with the
service account; verification simulates the read-only ABI method; lookups read
the application box straight from algod's REST API.
"""

import base64
import json
import logging
from pathlib import Path

import requests
from algosdk import abi, account, mnemonic
from algosdk.atomic_transaction_composer import (
    AccountTransactionSigner,
    AtomicTransactionComposer,
    TransactionWithSigner,
)
from algosdk.error import ABIEncodingError, AlgodHTTPError, AlgodResponseError, ConfirmationTimeoutError
from algosdk.logic import get_application_address
from algosdk.transaction import PaymentTxn
from algosdk.v2client import algod

from ..errors import AlreadyExists, RegistryUnavailable
from .base import NOT_REGISTERED, LedgerRegistry, Registration, RegistrationRecord, VerifyResult

logger = logging.getLogger(__name__)

BOX_PREFIX   = b"docs"
RECORD_TYPE  = abi.ABIType.from_string("(string,string,uint64)")
WAIT_ROUNDS  = 8
HTTP_TIMEOUT = 10

# Box MBR: 2500 + 400 × (len(name) + len(value)) microALGO
BOX_FLAT_MBR = 2500
BOX_BYTE_MBR = 400

_ALGOD_ERRORS = (AlgodHTTPError, AlgodResponseError, ConfirmationTimeoutError, OSError)


def box_name(certificate_number: str) -> bytes:
    return BOX_PREFIX + certificate_number.encode("utf-8")


def record_mbr(certificate_number: str, document_hash: str) -> int:
    """MBR (microALGO) of one DocumentRecord box.

    The ARC-4 tuple (string,string,uint64) encodes as a 12-byte head plus two
    length-prefixed strings.
    """
    value_len = 12 + 2 + len(certificate_number.encode()) + 2 + len(document_hash.encode())
    return BOX_FLAT_MBR + BOX_BYTE_MBR * (len(box_name(certificate_number)) + value_len)


def decode_record(value: bytes) -> RegistrationRecord:
    cert, doc_hash, timestamp = RECORD_TYPE.decode(value)
    return RegistrationRecord(certificate_number=cert, document_hash=doc_hash, timestamp=int(timestamp))


def load_contract(app_spec: dict) -> abi.Contract:
    """Build an ABI contract from an ARC-56 (or ARC-4) app spec."""
    methods = [abi.Method.undictify(m) for m in app_spec["methods"]]
    return abi.Contract(name=app_spec.get("name", "DocumentRegistry"), methods=methods)


class AlgorandRegistry(LedgerRegistry):
    name = "algorand"

    def __init__(
        self,
        algod_url: str,
        algod_token: str,
        app_id: int,
        contract: abi.Contract,
        private_key: str,
    ) -> None:
        self.algod_url = algod_url.rstrip("/")
        self.algod_token = algod_token
        self.app_id = app_id
        self.contract = contract
        self.client = algod.AlgodClient(algod_token, self.algod_url)
        self.sender = account.address_from_private_key(private_key)
        self.signer = AccountTransactionSigner(private_key)
        self.session = requests.Session()
        if algod_token:
            self.session.headers["X-Algo-API-Token"] = algod_token

    @classmethod
    def from_artifacts(
        cls,
        algod_url: str,
        algod_token: str,
        app_id_path: Path,
        app_spec_path: Path,
        signer_mnemonic: str,
    ) -> "AlgorandRegistry":
        """Build a client from the two files written by the deploy step."""
        if not signer_mnemonic:
            raise RegistryUnavailable("SIGNER_MNEMONIC is not set")
        try:
            app_id = int(Path(app_id_path).read_text().strip())
            app_spec = json.loads(Path(app_spec_path).read_text())
        except (OSError, ValueError) as e:
            raise RegistryUnavailable(
                "Registry deployment artifacts are missing or unreadable",
                details=str(e),
            ) from e

        return cls(
            algod_url=algod_url,
            algod_token=algod_token,
            app_id=app_id,
            contract=load_contract(app_spec),
            private_key=mnemonic.to_private_key(signer_mnemonic),
        )

    # ── Writes ────────────────────────────────────────────────────────────────
    def register(self, certificate_number: str, document_hash: str) -> Registration:
        if self.lookup(certificate_number) is not None:
            raise AlreadyExists(
                "Document with this certificate number already exists",
                details=certificate_number,
            )

        try:
            sp = self.client.suggested_params()
            pay = PaymentTxn(
                sender=self.sender,
                sp=sp,
                receiver=get_application_address(self.app_id),
                amt=record_mbr(certificate_number, document_hash),
            )
            atc = AtomicTransactionComposer()
            atc.add_method_call(
                app_id=self.app_id,
                method=self.contract.get_method_by_name("register_document"),
                sender=self.sender,
                sp=sp,
                signer=self.signer,
                method_args=[
                    TransactionWithSigner(pay, self.signer),
                    certificate_number,
                    document_hash,
                ],
                boxes=[(self.app_id, box_name(certificate_number))],
            )
            result = atc.execute(self.client, WAIT_ROUNDS)
        except _ALGOD_ERRORS as e:
            # The contract's duplicate assert surfaces as a logic eval error;
            # re-read to tell a lost race apart from a real failure.
            if "assert failed" in str(e) and self.lookup(certificate_number) is not None:
                raise AlreadyExists(
                    "Document with this certificate number already exists",
                    details=certificate_number,
                ) from e
            logger.error(f"[CHAIN] register_document failed: {e}")
            raise RegistryUnavailable("Failed to register on blockchain", details=str(e)) from e

        call = result.abi_results[0]
        record = RegistrationRecord(
            certificate_number=certificate_number,
            document_hash=document_hash,
            timestamp=int(call.return_value),
        )
        logger.info(f"[CHAIN] Registered {certificate_number} in round {result.confirmed_round} tx={call.tx_id}")
        return Registration(record=record, tx_hash=call.tx_id)

    # ── Reads ─────────────────────────────────────────────────────────────────
    def lookup(self, certificate_number: str) -> RegistrationRecord | None:
        name_b64 = base64.b64encode(box_name(certificate_number)).decode()
        try:
            resp = self.session.get(
                f"{self.algod_url}/v2/applications/{self.app_id}/box",
                params={"name": f"b64:{name_b64}"},
                timeout=HTTP_TIMEOUT,
            )
        except requests.RequestException as e:
            raise RegistryUnavailable("Registry node unreachable", details=str(e)) from e

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise RegistryUnavailable(
                f"Box read failed with HTTP {resp.status_code}",
                details=resp.text[:200],
            )
        try:
            return decode_record(base64.b64decode(resp.json()["value"]))
        except (ValueError, KeyError, IndexError, ABIEncodingError) as e:
            raise RegistryUnavailable("Box read returned an unreadable record", details=str(e)) from e

    def verify(self, certificate_number: str, document_hash: str) -> VerifyResult:
        try:
            atc = AtomicTransactionComposer()
            atc.add_method_call(
                app_id=self.app_id,
                method=self.contract.get_method_by_name("verify_document"),
                sender=self.sender,
                sp=self.client.suggested_params(),
                signer=self.signer,
                method_args=[certificate_number, document_hash],
                boxes=[(self.app_id, box_name(certificate_number))],
            )
            result = atc.simulate(self.client)
        except _ALGOD_ERRORS as e:
            raise RegistryUnavailable("Verification failed", details=str(e)) from e

        if result.failure_message:
            raise RegistryUnavailable("Verification failed", details=result.failure_message)

        matches, timestamp = result.abi_results[0].return_value
        if not timestamp:
            return NOT_REGISTERED
        return VerifyResult(matches=bool(matches), timestamp=int(timestamp))

    def describe(self) -> dict:
        return {"backend": self.name, "app_id": self.app_id, "algod": self.algod_url}

    def close(self) -> None:
        self.session.close()
