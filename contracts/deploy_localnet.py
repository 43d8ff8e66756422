"""
Deploy DocumentRegistry to AlgoKit LocalNet and write the app-id artifact.

Usage:
    algokit compile py smart_contracts/document_registry/contract.py --out-dir smart_contracts/artifacts/document_registry
    python deploy_localnet.py
"""
from pathlib import Path

from algokit_utils import AlgoAmount, AlgorandClient, PaymentParams

HERE        = Path(__file__).parent
ARC56_PATH  = HERE / "smart_contracts/artifacts/document_registry/DocumentRegistry.arc56.json"
APP_ID_PATH = HERE / "app-id.txt"


def main():
    print("Connecting to LocalNet...")
    algorand = AlgorandClient.default_localnet()
    deployer = algorand.account.localnet_dispenser()

    print("Deploying DocumentRegistry...")
    app_factory = algorand.client.get_app_factory(
        app_spec=ARC56_PATH.read_text(),
        default_sender=deployer.address,
        default_signer=deployer.signer,
    )
    app_client, _ = app_factory.deploy(
        on_schema_break="append",
        on_update="append",
    )

    # App account needs its own 0.1 ALGO minimum balance before boxes can be created
    algorand.send.payment(
        PaymentParams(
            sender=deployer.address,
            receiver=app_client.app_address,
            amount=AlgoAmount.from_algo(1),
        )
    )

    APP_ID_PATH.write_text(f"{app_client.app_id}\n")

    print("\n" + "=" * 40)
    print("DOCUMENT REGISTRY DEPLOYED")
    print(f"APP ID : {app_client.app_id}")
    print(f"Written: {APP_ID_PATH}")
    print("=" * 40 + "\n")


if __name__ == "__main__":
    main()
