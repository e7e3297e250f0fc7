#!/usr/bin/env python3
"""Example demonstrating record encryption and key rotation."""

import logging
import tempfile
import threading
from pathlib import Path

from record_key_custodian import CustodianConfig, RecordKeyCustodian
from record_key_custodian.exceptions import RotationCancelledError


def main() -> None:
    """Demonstrate the data-encryption key lifecycle."""
    logging.basicConfig(level=logging.WARNING)

    # Create a temporary directory for this example
    with tempfile.TemporaryDirectory() as temp_dir:
        config = CustodianConfig(
            key_store_path=str(Path(temp_dir) / "keys"),
            record_store_path=str(Path(temp_dir) / "records"),
            max_workers=4,
            batch_size=10,
        )

        print("🔐 Record Key Rotation Example")
        print("=" * 50)
        print(f"📁 Key store:    {config.key_store_path}")
        print(f"📁 Record store: {config.record_store_path}")

        custodian = RecordKeyCustodian(config)

        # Bootstrap the data-encryption key
        key = custodian.generate_key()
        print(f"\n🔑 Generated key {key.key_id}")

        # Store some records
        print("\n📝 Storing records...")
        charts = {
            "patient-1001": b'{"bp": "120/80", "pulse": 72}',
            "patient-1002": b'{"bp": "135/85", "pulse": 80}',
            "patient-1003": b'{"bp": "118/76", "pulse": 64}',
        }
        for record_id, chart in charts.items():
            key_id = custodian.put_record(record_id, chart)
            print(f"  ✅ {record_id} encrypted under {key_id}")

        # A cancelled rotation leaves everything as it was
        print("\n⏹️  Starting a rotation and cancelling it...")
        cancel = threading.Event()
        cancel.set()
        try:
            custodian.rotate_key(cancel_event=cancel)
        except RotationCancelledError as e:
            print(f"  ✅ {e}; active key is still {custodian.key_store.get_active().key_id}")

        # Rotate for real
        print("\n🔄 Rotating the data-encryption key...")
        result = custodian.rotate_key()
        print(f"  ✅ Rotation {result.rotation_id} completed")
        print(f"     Old key: {result.old_key_id} (purged)")
        print(f"     New key: {result.new_key_id}")
        print(f"     Records migrated: {result.records_migrated}")

        # Records still decrypt, now under the new key
        print("\n🔍 Verifying records...")
        for record_id, chart in charts.items():
            assert custodian.get_record(record_id) == chart
            print(f"  ✅ {record_id}: {custodian.get_record(record_id).decode('utf-8')}")

        print("\n📜 Rotation history:")
        for entry in custodian.get_rotation_history(limit=5):
            print(f"  - {entry.outcome} ({entry.finished_at.strftime('%Y-%m-%d %H:%M:%S')})"
                  f" {entry.old_key_id} -> {entry.new_key_id}")

        print("\n💡 Key takeaways:")
        print("  - Records are re-encrypted into a staging area before any live record changes")
        print("  - Rerunning rotate after a crash resumes from the rotation journal")
        print("  - The old key is purged only after every record is under the new key")


if __name__ == "__main__":
    main()
