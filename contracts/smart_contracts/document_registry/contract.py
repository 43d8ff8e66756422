# =============================================================================
#  DocumentRegistry: Algorand Smart Contract
#  -----------------------------------------------------------------------------
#  Standard  : ARC-4  (typed ABI) + ARC-28 events
#  Language  : Algorand Python  →  compiled to AVM bytecode via PuyaPy
# =============================================================================
#
#  STORAGE MODEL
#  -------------
#  Box storage, one box per certificate:
#
#    BoxMap<String, DocumentRecord>   (box name = "docs" + certificate number)
#    │
#    ├── Key   : certificate number, e.g. "CERT-12345678-0042"
#    └── Value : (certificate_number, document_hash, timestamp)
#
#  Each box costs 2500 + 400 × (name_length + value_length) microALGO in MBR,
#  paid by the payment transaction grouped with register_document().
#
#  Records are write-once: there is no update or delete method.
# =============================================================================

from algopy import ARC4Contract, BoxMap, Global, String, UInt64, arc4, gtxn


class DocumentRecord(arc4.Struct):
    certificate_number: arc4.String
    document_hash: arc4.String
    timestamp: arc4.UInt64


class DocumentRegistered(arc4.Struct):
    """ARC-28 event logged on every successful registration."""

    certificate_number: arc4.String
    document_hash: arc4.String
    timestamp: arc4.UInt64


class DocumentRegistry(ARC4Contract):
    """
    On-chain registry mapping certificate numbers to document SHA-256 hashes.

    One instance per network. Anyone can read or verify a record; the service
    account registers new ones.
    """

    def __init__(self) -> None:
        self.documents = BoxMap(String, DocumentRecord, key_prefix="docs")

    @arc4.abimethod
    def register_document(
        self,
        mbr_payment: gtxn.PaymentTransaction,
        certificate_number: String,
        document_hash: String,
    ) -> UInt64:
        """
        Store a new certificate record and return its registration time.

        Rejected atomically if the certificate number is already registered,
        so a record can never be overwritten.
        """
        assert certificate_number not in self.documents, "Document already exists"
        assert (
            mbr_payment.receiver == Global.current_application_address
        ), "MBR payment must fund the registry"

        now = Global.latest_timestamp
        self.documents[certificate_number] = DocumentRecord(
            arc4.String(certificate_number),
            arc4.String(document_hash),
            arc4.UInt64(now),
        )
        arc4.emit(
            DocumentRegistered(
                arc4.String(certificate_number),
                arc4.String(document_hash),
                arc4.UInt64(now),
            )
        )
        return now

    @arc4.abimethod(readonly=True)
    def verify_document(self, certificate_number: String, document_hash: String) -> tuple[bool, UInt64]:
        """
        (matches, registered_at). Unknown certificates yield (False, 0); a known
        certificate returns its timestamp whether or not the hash matches.
        """
        if certificate_number not in self.documents:
            return False, UInt64(0)
        record = self.documents[certificate_number].copy()
        return record.document_hash.native == document_hash, record.timestamp.native

    @arc4.abimethod(readonly=True)
    def get_document(self, certificate_number: String) -> tuple[String, String, UInt64, bool]:
        if certificate_number not in self.documents:
            return String(""), String(""), UInt64(0), False
        record = self.documents[certificate_number].copy()
        return (
            record.certificate_number.native,
            record.document_hash.native,
            record.timestamp.native,
            True,
        )
