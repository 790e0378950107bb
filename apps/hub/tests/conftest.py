import asyncio
import base64
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict

ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

import pytest
from fastapi.testclient import TestClient

from config import settings
from main import create_app
from services.hidroweb_auth import token_cache
from services.station_history import HistoryResult, history_service
from services.station_lists import StationLists
from services.stations import StationDirectory, StationInventory, station_directory

INVENTORY = [
    {"codigoestacao": "001", "Estacao_Nome": "CUIABÁ", "Tipo_Estacao": "Pluviometrica", "Operando": "1",
     "Municipio_Nome": "Cuiabá", "UF_Estacao": "MT", "Bacia_Nome": "RIO PARAGUAI", "Rio_Nome": None},
    {"codigoestacao": "002", "Estacao_Nome": "CUIABÁ (PORTO)", "Tipo_Estacao": "Fluviometrica", "Operando": "1",
     "Municipio_Nome": "Cuiabá", "UF_Estacao": "MT", "Bacia_Nome": "RIO PARAGUAI", "Rio_Nome": "RIO CUIABÁ"},
    {"codigoestacao": "003", "Estacao_Nome": "VÁRZEA GRANDE", "Tipo_Estacao": "Pluviometrica", "Operando": "1",
     "Municipio_Nome": "Várzea Grande", "UF_Estacao": "MT", "Bacia_Nome": "RIO PARAGUAI", "Rio_Nome": None},
    {"codigoestacao": "004", "Estacao_Nome": "CÁCERES", "Tipo_Estacao": "Fluviometrica", "Operando": "0",
     "Municipio_Nome": "Cáceres", "UF_Estacao": "MT", "Bacia_Nome": "RIO PARAGUAI", "Rio_Nome": "RIO PARAGUAI"},
    {"codigoestacao": "005", "Estacao_Nome": "CAMPO GRANDE", "Tipo_Estacao": "Pluviometrica", "Operando": "1",
     "Municipio_Nome": "Campo Grande", "UF_Estacao": "MS", "Bacia_Nome": "RIO PARANÁ", "Rio_Nome": None},
    {"codigoestacao": "006", "Estacao_Nome": "SINOP", "Tipo_Estacao": "Pluviometrica", "Operando": "1",
     "Municipio_Nome": "Sinop", "UF_Estacao": "MT", "Bacia_Nome": "RIO AMAZONAS", "Rio_Nome": None},
]
WHITELIST = ["001", "002", "003", "006"]
BLACKLIST = ["006"]


class FakeHistoryService:
    """Records calls and serves canned items per station code."""

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.responses: dict[str, list[dict[str, Any]]] = {}
        self.failures: set[str] = set()
        self.delay = 0.0
        self.active = 0
        self.max_active = 0

    async def get_history(self, station_code, date_filter_type, date, interval) -> HistoryResult:
        self.calls.append((station_code, date_filter_type, date, interval))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if str(station_code) in self.failures:
                raise RuntimeError(f"boom {station_code}")
            items = [dict(item) for item in self.responses.get(str(station_code), [])]
            return HistoryResult(
                station_code=station_code,
                status="Atualizada" if items else "Desatualizada",
                items=items,
                message="Sucesso",
            )
        finally:
            self.active -= 1


def encode_token(claims: Dict[str, Any]) -> str:
    def _segment(data: Dict[str, Any]) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode("utf-8")).rstrip(b"=").decode("ascii")

    return f"{_segment({'alg': 'HS256', 'typ': 'JWT'})}.{_segment(claims)}.signature"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_hidroweb_state() -> None:
    token_cache.invalidate()
    history_service.error_log.clear()
    station_directory.in_flight.clear()
    station_directory.inventory.invalidate()
    yield
    token_cache.invalidate()
    history_service.error_log.clear()
    station_directory.in_flight.clear()
    station_directory.inventory.invalidate()


@pytest.fixture
def settings_override() -> Callable[..., None]:
    original: Dict[str, Any] = {}

    def _apply(**overrides: Any) -> None:
        for key, value in overrides.items():
            if key not in original:
                original[key] = getattr(settings, key)
            setattr(settings, key, value)

    yield _apply

    for key, value in original.items():
        setattr(settings, key, value)


@pytest.fixture
def hidroweb_credentials(settings_override: Callable[..., None]) -> None:
    settings_override(hidroweb_username="hub-user", hidroweb_password="hub-secret")
    yield


@pytest.fixture
def make_token() -> Callable[[Dict[str, Any]], str]:
    return encode_token


@pytest.fixture
def station_files(tmp_path: Path) -> Dict[str, Path]:
    inventory_path = tmp_path / "inventario.json"
    inventory_path.write_text(json.dumps(INVENTORY), encoding="utf-8")
    lists_dir = tmp_path / "station_lists"
    lists_dir.mkdir()
    (lists_dir / "whitelist.json").write_text(json.dumps(WHITELIST), encoding="utf-8")
    (lists_dir / "blacklist.json").write_text(json.dumps(BLACKLIST), encoding="utf-8")
    return {"inventory": inventory_path, "lists": lists_dir}


@pytest.fixture
def fake_history() -> FakeHistoryService:
    return FakeHistoryService()


@pytest.fixture
def make_directory(station_files: Dict[str, Path], fake_history: FakeHistoryService) -> Callable[..., StationDirectory]:
    def _build(**overrides: Any) -> StationDirectory:
        options: Dict[str, Any] = {
            "inventory": StationInventory(station_files["inventory"]),
            "lists": StationLists(station_files["lists"]),
            "history": fake_history,
        }
        options.update(overrides)
        return StationDirectory(**options)

    return _build


@pytest.fixture
def client() -> TestClient:
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
