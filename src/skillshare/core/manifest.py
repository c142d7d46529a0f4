"""Copy-mode manifest: which target entries skillshare manages, with checksums."""

import json
import logging
import os
from pathlib import Path

from skillshare.core.files import now_iso
from skillshare.models import CopyManifest

logger = logging.getLogger("skillshare.manifest")

MANIFEST_FILE = ".skillshare-manifest.json"


def read_manifest(target_path: Path) -> CopyManifest:
    """Load a target's manifest. Missing or corrupt manifests read as empty."""
    path = target_path / MANIFEST_FILE
    if not path.exists():
        return CopyManifest()
    try:
        return CopyManifest.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError) as e:
        logger.warning("Corrupt manifest in %s, treating as empty: %s", target_path, e)
        return CopyManifest()


def write_manifest(target_path: Path, manifest: CopyManifest) -> None:
    """Write the manifest via a temp file and rename."""
    manifest.updated_at = now_iso()
    path = target_path / MANIFEST_FILE
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(manifest.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    os.replace(tmp, path)


def remove_manifest(target_path: Path) -> None:
    (target_path / MANIFEST_FILE).unlink(missing_ok=True)
