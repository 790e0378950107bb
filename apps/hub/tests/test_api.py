from fastapi.testclient import TestClient

from api.v1 import auth_router, stations_router, stats_router
from config import settings
from hidroweb import AuthError
from services.hidroweb_auth import TokenStats
from services.rain_stats import RainStatsService
from services.station_history import HistoryResult
from services.station_lists import StationLists


def test_meta_endpoints(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok", "version": settings.app_version}
    assert client.get("/api/v1/health").json()["status"] == "ok"
    info = client.get("/api/v1/info").json()
    assert info["name"] == settings.app_name
    assert info["history_batch_size"] == settings.ana_history_batch_size


def test_station_list_rejects_unknown_query_keys(client: TestClient) -> None:
    response = client.get("/api/v1/estacoes/lista", params={"estado": "MT"})
    assert response.status_code == 400
    payload = response.json()
    assert payload["erro"] == "Parâmetro inválido"
    assert "incluirHistorico" in payload["parametros_validos"]


def test_station_list_filters(client: TestClient, monkeypatch, make_directory) -> None:
    monkeypatch.setattr(stations_router, "station_directory", make_directory())

    response = client.get("/api/v1/estacoes/lista", params={"uf": "mt"})
    assert response.status_code == 200
    assert [station["codigo_Estacao"] for station in response.json()] == ["001", "002", "003"]

    single = client.get("/api/v1/estacoes/lista", params={"codigo": "002"})
    assert single.status_code == 200
    assert single.json()["Estacao_Nome"] == "CUIABÁ (PORTO)"

    missing = client.get("/api/v1/estacoes/lista", params={"codigo": "004"})
    assert missing.status_code == 404

    empty = client.get("/api/v1/estacoes/lista", params={"uf": "RJ"})
    assert empty.status_code == 404
    assert empty.json()["erro"] == "Nenhuma estação encontrada para os filtros aplicados"


def test_station_list_with_history(client: TestClient, monkeypatch, make_directory, fake_history) -> None:
    fake_history.responses["001"] = [{"Data_Hora_Medicao": "2025-09-14 10:00:00.0", "Chuva_Adotada": "1"}]
    monkeypatch.setattr(stations_router, "station_directory", make_directory())

    response = client.get(
        "/api/v1/estacoes/lista",
        params={
            "municipio": "cuiaba",
            "incluirHistorico": "true",
            "tipoFiltroData": "DATA_LEITURA",
            "dataBusca": "2025-09-14",
            "intervalo": "HORA_24",
        },
    )

    assert response.status_code == 200
    stations = response.json()
    assert [station["codigo_Estacao"] for station in stations] == ["001", "002"]
    assert stations[0]["historico"]["items"][0]["Chuva_Adotada"] == "1"


def test_station_list_incomplete_history_params(client: TestClient, monkeypatch, make_directory) -> None:
    monkeypatch.setattr(stations_router, "station_directory", make_directory())
    response = client.get("/api/v1/estacoes/lista", params={"incluirHistorico": "true"})
    assert response.status_code == 400


def test_station_list_upstream_failure(client: TestClient, monkeypatch) -> None:
    class _Broken:
        async def get_stations_data(self, **kwargs):
            raise RuntimeError("inventory offline")

    monkeypatch.setattr(stations_router, "station_directory", _Broken())
    response = client.get("/api/v1/estacoes/lista")
    assert response.status_code == 502
    assert response.json() == {"erro": "Falha ao listar estações", "detalhes": "inventory offline"}


def test_station_lists_roundtrip(client: TestClient, monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(stations_router, "station_lists", StationLists(tmp_path / "lists"))

    assert client.get("/api/v1/estacoes/listas").json() == {"whitelist": [], "blacklist": []}
    response = client.put("/api/v1/estacoes/listas", json={"whitelist": ["2", "1"], "blacklist": ["9"]})
    assert response.status_code == 200
    assert response.json() == {"whitelist": ["1", "2"], "blacklist": ["9"]}
    assert client.get("/api/v1/estacoes/listas").json()["whitelist"] == ["1", "2"]


def test_station_history_endpoint(client: TestClient, monkeypatch) -> None:
    class _History:
        async def get_history(self, code, date_filter_type, date, interval):
            items = [
                {"Data_Hora_Medicao": "2025-09-14 10:00:00.0", "Chuva_Adotada": "1"},
                {"Data_Hora_Medicao": "2025-09-14 11:00:00.0", "Chuva_Adotada": "3"},
            ]
            return HistoryResult(station_code=code, status="Atualizada", items=items, message="Sucesso", total=4.0)

    monkeypatch.setattr(stations_router, "history_service", _History())

    response = client.get("/api/v1/estacoes/1556005/historico", params={"dataBusca": "2025-09-14"})
    assert response.status_code == 200
    payload = response.json()
    assert payload["codigo_estacao"] == "1556005"
    assert payload["acumulado_intervalo_completo"] == 4.0
    assert payload["estatisticas"]["media_chuva"] == 2.0

    invalid = client.get("/api/v1/estacoes/1556005/historico", params={"dataBusca": "14-09-2025"})
    assert invalid.status_code == 400
    trailing_newline = client.get("/api/v1/estacoes/1556005/historico", params={"dataBusca": "2025-09-14\n"})
    assert trailing_newline.status_code == 400


def test_station_history_endpoint_upstream_failure(client: TestClient, monkeypatch) -> None:
    class _History:
        async def get_history(self, code, date_filter_type, date, interval):
            return HistoryResult.failure(code, "Server error '500 Internal Server Error'")

    monkeypatch.setattr(stations_router, "history_service", _History())
    response = client.get("/api/v1/estacoes/1556005/historico", params={"dataBusca": "2025-09-14"})
    assert response.status_code == 502
    assert response.json()["codigo_estacao"] == "1556005"


def test_daily_means_endpoint(client: TestClient, monkeypatch, make_directory, fake_history) -> None:
    fake_history.responses["001"] = [{"Data_Hora_Medicao": "2025-09-14 10:00:00.0", "Chuva_Adotada": "10.00"}]
    service = RainStatsService(make_directory(), today=lambda: "2025-09-14")
    monkeypatch.setattr(stats_router, "rain_stats_service", service)

    response = client.get("/api/v1/estatisticas/medias-diarias/mt/2")

    assert response.status_code == 200
    payload = response.json()
    assert payload["series"][0]["dia"] == "2025-09-14"
    assert payload["series"][0]["media"] == 10
    assert payload["series"][0]["acumulado_uf_MT"] == 10
    assert payload["dashboard_resumo"]["total_estacoes_verificadas"] == 3


def test_daily_means_endpoint_validation_and_failure(client: TestClient, monkeypatch) -> None:
    assert client.get("/api/v1/estatisticas/medias-diarias/MT/0").status_code == 422

    class _Broken:
        async def state_daily_municipal_means(self, uf, days, include_today=True):
            raise RuntimeError("upstream down")

    monkeypatch.setattr(stats_router, "rain_stats_service", _Broken())
    response = client.get("/api/v1/estatisticas/medias-diarias/MT/3")
    assert response.status_code == 502
    assert response.json() == {"erro": "Falha ao calcular médias", "detalhes": "upstream down"}


class _StubTokenCache:
    def __init__(self, error=None) -> None:
        self.error = error
        self.authenticated = False

    def token_stats(self) -> TokenStats:
        if not self.authenticated:
            return TokenStats(has_valid_token=False, token=None)
        return TokenStats(has_valid_token=True, token="abc.def.ghi", meta={"expiresIn": "59' 59''"})

    async def authenticate(self) -> str:
        if self.error is not None:
            raise self.error
        self.authenticated = True
        return "abc.def.ghi"


def test_auth_status_forces_authentication(client: TestClient, monkeypatch) -> None:
    stub = _StubTokenCache()
    monkeypatch.setattr(auth_router, "token_cache", stub)

    response = client.get("/api/v1/auth/")

    assert response.status_code == 200
    assert response.json() == {
        "status": "success",
        "code": 200,
        "message": "Token successfully obtained!",
        "token": "abc.def.ghi",
        "meta": {"expiresIn": "59' 59''"},
    }
    assert stub.authenticated


def test_auth_status_reports_hidroweb_errors(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(auth_router, "token_cache", _StubTokenCache(error=AuthError.invalid_credentials()))

    response = client.get("/api/v1/auth/")

    assert response.status_code == 401
    payload = response.json()
    assert payload["type"] == "AuthError"
    assert payload["code"] == 401


def test_auth_status_wraps_unexpected_errors(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(auth_router, "token_cache", _StubTokenCache(error=KeyError("boom")))

    response = client.get("/api/v1/auth/")

    assert response.status_code == 500
    assert response.json()["message"] == "Falha no processo de autenticação"


def test_auth_status_reports_unreadable_claims(client: TestClient, monkeypatch) -> None:
    class _BadClaims(_StubTokenCache):
        def token_stats(self) -> TokenStats:
            error = {"type": "INVALID_CLAIMS", "message": "Token iat/exp must be numeric"}
            return TokenStats(has_valid_token=False, token="abc.def.ghi", error=error)

    monkeypatch.setattr(auth_router, "token_cache", _BadClaims())

    response = client.get("/api/v1/auth/")

    assert response.status_code == 200
    assert response.json()["error"]["type"] == "INVALID_CLAIMS"
