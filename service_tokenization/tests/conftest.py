"""
Shared fixtures for Tokenization Gateway tests.
"""

import io
import struct
import zlib
from typing import Optional, Union

import pytest

from shared.config import get_config
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig
from shared.test_helpers import DRIVER_HOST, REGISTRY_HOST, FakeUpstream, RecordingSleep, install_fake_upstream
from service_tokenization.app.adapters import DriverClient, RegistryClient
from service_tokenization.app.identity import IdentityConfiguration, IdentityStore


@pytest.fixture
def upstream(monkeypatch):
    """Fake registry and driver behind every httpx.AsyncClient."""
    fake = FakeUpstream()
    install_fake_upstream(monkeypatch, fake)
    return fake


@pytest.fixture
def identity_store():
    """Identity with upstream hosts but no home org."""
    return IdentityStore(IdentityConfiguration(registry_host=REGISTRY_HOST, driver_host=DRIVER_HOST))


@pytest.fixture
def connected_store():
    """Identity with a home org already connected."""
    return IdentityStore(IdentityConfiguration(
        registry_host=REGISTRY_HOST,
        driver_host=DRIVER_HOST,
        home_org="org-123"
    ))


@pytest.fixture
def metrics():
    return MetricsCollector("tokenization")


@pytest.fixture
def registry_client(connected_store):
    return RegistryClient(connected_store, timeout=5.0)


@pytest.fixture
def driver_client(connected_store):
    return DriverClient(connected_store, timeout=5.0)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def poll_config():
    return RetryConfig.fixed(interval=30.0, max_attempts=60)


@pytest.fixture
def service_config(tmp_path):
    """Service configuration pointing at the fake upstreams."""
    return get_config(
        "tokenization",
        31311,
        registry_host=REGISTRY_HOST,
        driver_host=DRIVER_HOST,
        home_org=None,
        config_file=str(tmp_path / "config.yaml"),
    )


# ZIP archives with traditional PKWARE encryption, which zipfile can read but not write

def _crc_update(crc: int, byte: int) -> int:
    return zlib.crc32(bytes([byte]), crc ^ 0xFFFFFFFF) ^ 0xFFFFFFFF


class _ZipCryptoEncrypter:

    def __init__(self, password: bytes):
        self.keys = [0x12345678, 0x23456789, 0x34567890]
        for byte in password:
            self._update(byte)

    def _update(self, byte: int) -> None:
        k0, k1, k2 = self.keys
        k0 = _crc_update(k0, byte)
        k1 = (k1 + (k0 & 0xFF)) & 0xFFFFFFFF
        k1 = (k1 * 134775813 + 1) & 0xFFFFFFFF
        k2 = _crc_update(k2, (k1 >> 24) & 0xFF)
        self.keys = [k0, k1, k2]

    def encrypt(self, data: bytes) -> bytes:
        out = bytearray()
        for byte in data:
            temp = (self.keys[2] | 2) & 0xFFFF
            out.append(byte ^ (((temp * (temp ^ 1)) >> 8) & 0xFF))
            self._update(byte)
        return bytes(out)


def create_zip(content: Union[str, bytes], password: Optional[str] = None,
               filename: str = "detokenization.txt") -> bytes:
    """Build a single-member stored ZIP archive, encrypted when a password is given."""
    data = content.encode("utf-8") if isinstance(content, str) else content
    crc = zlib.crc32(data) & 0xFFFFFFFF
    flags = 0
    payload = data

    if password is not None:
        flags = 0x1
        header = bytes(range(1, 12)) + bytes([(crc >> 24) & 0xFF])
        payload = _ZipCryptoEncrypter(password.encode("utf-8")).encrypt(header + data)

    name = filename.encode("ascii")
    dos_time, dos_date = 0, (0 << 9) | (1 << 5) | 1

    buffer = io.BytesIO()
    buffer.write(struct.pack(
        "<4s2B4HL2L2H", b"PK\x03\x04", 20, 0, flags, 0, dos_time, dos_date,
        crc, len(payload), len(data), len(name), 0
    ))
    buffer.write(name)
    buffer.write(payload)

    central_offset = buffer.tell()
    buffer.write(struct.pack(
        "<4s4B4HL2L5H2L", b"PK\x01\x02", 20, 0, 20, 0, flags, 0, dos_time, dos_date,
        crc, len(payload), len(data), len(name), 0, 0, 0, 0, 0, 0
    ))
    buffer.write(name)
    central_size = buffer.tell() - central_offset

    buffer.write(struct.pack("<4s4H2LH", b"PK\x05\x06", 0, 0, 1, 1, central_size, central_offset, 0))
    return buffer.getvalue()


@pytest.fixture
def make_zip():
    """Builder for detokenization upload archives."""
    return create_zip
