"""
One-shot deployment of DocumentRegistry to Algorand Testnet.
Usage:
    DEPLOYER_MNEMONIC="word1 word2 ..." python3 deploy_testnet.py
"""
import base64
import json
import os
import sys
from pathlib import Path

from algosdk import account, mnemonic
from algosdk.logic import get_application_address
from algosdk.transaction import (
    ApplicationCreateTxn,
    OnComplete,
    PaymentTxn,
    StateSchema,
    wait_for_confirmation,
)
from algosdk.v2client import algod

ALGOD_URL   = os.environ.get("ALGOD_URL", "https://testnet-api.algonode.cloud")
ALGOD_TOKEN = os.environ.get("ALGOD_TOKEN", "")
HERE        = Path(__file__).parent
ARC56_PATH  = HERE / "smart_contracts/artifacts/document_registry/DocumentRegistry.arc56.json"
APP_ID_PATH = HERE / "app-id.txt"

# App account minimum balance (microALGO) so it can hold boxes
APP_SEED_FUNDS = 1_000_000


def main() -> None:
    raw_mnemonic = os.environ.get("DEPLOYER_MNEMONIC", "").strip()
    if not raw_mnemonic:
        print("ERROR: Set DEPLOYER_MNEMONIC env var to your 25-word mnemonic.")
        sys.exit(1)

    private_key = mnemonic.to_private_key(raw_mnemonic)
    sender      = account.address_from_private_key(private_key)
    print(f"Deployer: {sender}")

    client = algod.AlgodClient(ALGOD_TOKEN, ALGOD_URL)
    arc56  = json.loads(ARC56_PATH.read_text())

    # ARC-56 carries the TEAL source base64-encoded; algod compiles it
    def compile_teal(src_b64: str) -> bytes:
        src = base64.b64decode(src_b64).decode()
        return base64.b64decode(client.compile(src)["result"])

    approval_bytes = compile_teal(arc56["source"]["approval"])
    clear_bytes    = compile_teal(arc56["source"]["clear"])

    # DocumentRegistry keeps everything in boxes: no global/local state
    txn = ApplicationCreateTxn(
        sender=sender,
        sp=client.suggested_params(),
        on_complete=OnComplete.NoOpOC,
        approval_program=approval_bytes,
        clear_program=clear_bytes,
        global_schema=StateSchema(num_uints=0, num_byte_slices=0),
        local_schema=StateSchema(num_uints=0, num_byte_slices=0),
    )
    tx_id = client.send_transaction(txn.sign(private_key))
    print(f"Transaction submitted: {tx_id}")
    print("Waiting for confirmation…")

    result = wait_for_confirmation(client, tx_id, wait_rounds=8)
    app_id = result["application-index"]

    fund = PaymentTxn(
        sender=sender,
        sp=client.suggested_params(),
        receiver=get_application_address(app_id),
        amt=APP_SEED_FUNDS,
    )
    fund_id = client.send_transaction(fund.sign(private_key))
    wait_for_confirmation(client, fund_id, wait_rounds=8)

    APP_ID_PATH.write_text(f"{app_id}\n")

    print()
    print("=" * 55)
    print("  DocumentRegistry deployed to Algorand Testnet")
    print(f"      App ID : {app_id}")
    print(f"      TxID   : {tx_id}")
    print(f"      Written: {APP_ID_PATH}")
    print("=" * 55)
    print()
    print("Next: set LEDGER_BACKEND=algorand, ALGOD_URL and SIGNER_MNEMONIC for the API.")


if __name__ == "__main__":
    main()
