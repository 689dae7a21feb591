"""Images stored in a local directory.

Layout::

    {root}/manifest.json
    {root}/signature-1
    {root}/signature-2
    ...

Signatures are numbered from 1; reading stops at the first missing index.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sentinel_image_policy.image import ImageReference

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"


def signature_path(root: Path, index: int) -> Path:
    """Path of the ``index``-th signature (0-based)."""
    return root / f"signature-{index + 1}"


class DirectoryImage:
    """An image read from a directory, claiming an externally supplied reference."""

    def __init__(self, root: str | Path, reference: ImageReference) -> None:
        self.root = Path(root)
        self._reference = reference

    @property
    def reference(self) -> ImageReference:
        return self._reference

    async def manifest(self) -> bytes:
        return (self.root / MANIFEST_FILE).read_bytes()

    async def manifest_digest(self) -> str:
        return "sha256:" + hashlib.sha256(await self.manifest()).hexdigest()

    async def signatures(self) -> list[bytes]:
        signatures: list[bytes] = []
        while True:
            path = signature_path(self.root, len(signatures))
            if not path.exists():
                break
            signatures.append(path.read_bytes())
        logger.debug("Read %d signatures from %s", len(signatures), self.root)
        return signatures

    def put_signatures(self, signatures: list[bytes]) -> None:
        """Replace the stored signatures."""
        index = 0
        while signature_path(self.root, index).exists():
            signature_path(self.root, index).unlink()
            index += 1
        for index, signature in enumerate(signatures):
            signature_path(self.root, index).write_bytes(signature)
