"""
Password-protected ZIP unpacking for detokenization uploads.
"""

import io
import lzma
import zipfile
import zlib
from typing import Optional


class ArchiveError(Exception):
    """The upload could not be opened, unlocked or decoded."""


class ZipArchiveUnpacker:
    """Reads the first regular member of a ZipCrypto-protected archive."""

    def __init__(self, max_member_bytes: Optional[int] = 1024 * 1024):
        self.max_member_bytes = max_member_bytes

    def unpack(self, data: bytes, password: str) -> str:
        """Return the member text as decoded, minus a trailing line break."""
        try:
            with zipfile.ZipFile(io.BytesIO(data), "r") as zf:
                member = next((info for info in zf.infolist() if not info.is_dir()), None)
                if member is None:
                    raise ArchiveError("Archive is empty")
                if self.max_member_bytes is not None and member.file_size > self.max_member_bytes:
                    raise ArchiveError(f"Archive member {member.filename} is too large")
                raw = zf.read(member, pwd=password.encode("utf-8"))
        except zipfile.BadZipFile as e:
            raise ArchiveError(f"Not a valid archive: {e}") from e
        except NotImplementedError as e:
            raise ArchiveError(f"Unsupported archive encryption: {e}") from e
        except RuntimeError as e:
            # zipfile reports a wrong or missing password as RuntimeError
            raise ArchiveError(str(e)) from e
        except (zlib.error, lzma.LZMAError, OSError, EOFError) as e:
            # bz2 reports a corrupt stream as OSError, a truncated one as EOFError
            raise ArchiveError(f"Corrupt archive data: {e}") from e

        try:
            return raw.decode("utf-8").rstrip("\r\n")
        except UnicodeDecodeError as e:
            raise ArchiveError(f"Archive content is not text: {e}") from e
