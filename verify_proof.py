from pathlib import Path
import json
import sys

from main import sha256_file


PROJECT_ROOT = Path(__file__).resolve().parent
PROOFS_DIR = PROJECT_ROOT / "proofs"


def find_latest_manifest(proofs_dir: Path = PROOFS_DIR) -> Path | None:
    """Return the most recent proof_manifest_*.json file, or None if none exist."""
    if not proofs_dir.exists():
        return None
    manifests = sorted(proofs_dir.glob("proof_manifest_*.json"))
    if not manifests:
        return None
    return manifests[-1]


def _check(label: str, info: dict) -> bool:
    path = Path(info.get("path", ""))
    print(f"  [{label}] {path}")

    if info.get("missing"):
        print("    Manifest says: missing=True (file did not exist at run time).")
        if path.exists():
            print("    Current state: file NOW exists (post-run change).")
        return True

    if not path.exists():
        print("    ERROR: File is missing on disk now.")
        return False

    expected_hash = info.get("sha256")
    actual_hash = sha256_file(path)
    if expected_hash != actual_hash:
        print("    MISMATCH!")
        print(f"      expected: {expected_hash}")
        print(f"      actual:   {actual_hash}")
        return False

    print("    OK (hash matches manifest).")
    return True


def verify_manifest(manifest_path: Path) -> bool:
    """Re-hash every input and output listed in a manifest. True if all match."""
    print(f"Verifying manifest: {manifest_path}")

    with manifest_path.open("r", encoding="utf-8") as f:
        manifest = json.load(f)

    overall_ok = True

    print("\n[INPUT WORKBOOKS]")
    for role, info in manifest.get("inputs", {}).items():
        overall_ok = _check(role, info) and overall_ok

    print("\n[OUTPUT FILES]")
    for key, info in manifest.get("outputs", {}).items():
        overall_ok = _check(key, info) and overall_ok

    print("\n============================================")
    if overall_ok:
        print("ALL CHECKS PASSED - files match the manifest.")
    else:
        print("ONE OR MORE CHECKS FAILED - files were changed or are missing.")
    print("============================================")
    return overall_ok


if __name__ == "__main__":
    target = Path(sys.argv[1]) if len(sys.argv) > 1 else find_latest_manifest()
    if target is None:
        print(f"No proof_manifest_*.json files found in {PROOFS_DIR}")
        sys.exit(1)
    sys.exit(0 if verify_manifest(target) else 1)
