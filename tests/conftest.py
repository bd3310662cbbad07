import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from src.sheets.cache import SheetsCache
from tests.fakes import FakeClock, FakeSheetsTransport


VEICULO_GRID = [
    ["Codigo", "Descrição"],
    ["EC-21.4", "Escavadeira"],
]


@pytest.fixture(scope="session")
def pem_key() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def pem_body(pem_key) -> str:
    lines = pem_key.strip().splitlines()
    return "".join(lines[1:-1])


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> FakeSheetsTransport:
    fake = FakeSheetsTransport()
    fake.add_sheet("Veiculo", VEICULO_GRID, sheet_id=42)
    return fake


@pytest.fixture
def sheets_cache(transport, clock) -> SheetsCache:
    return SheetsCache(transport, clock=clock)
