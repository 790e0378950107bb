from datetime import datetime, timezone

import pytest

from hydrology.accumulation import accumulate, group_24h_windows, has_valid_rain, parse_rain, rain_total
from hydrology.timestamps import format_hidroweb, local_today, parse_local_timestamp


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("10,5", 10.5),
        ("5.0", 5.0),
        (3, 3.0),
        (" 0,25 ", 0.25),
        ("", None),
        ("abc", None),
        (None, None),
        (True, None),
        ("nan", None),
        ("1_000", None),
    ],
)
def test_parse_rain(raw, expected):
    assert parse_rain(raw) == expected


def test_rain_total_handles_empty_and_non_numeric():
    assert rain_total([]) is None
    assert rain_total([{"Chuva_Adotada": None}, {"Chuva_Adotada": "x"}]) is None
    assert rain_total([{"Chuva_Adotada": "10,5"}, {"Chuva_Adotada": "5.0"}]) == 15.5
    assert rain_total([{"Chuva_Adotada": "0.1"}, {"Chuva_Adotada": "0.2"}]) == 0.3


def test_has_valid_rain():
    assert has_valid_rain([{"Chuva_Adotada": None}, {"Chuva_Adotada": "0"}])
    assert not has_valid_rain([{"Cota_Adotada": "120"}])


def test_local_timestamps_round_trip_through_utc():
    moment = parse_local_timestamp("2025-09-14 12:00:00.0", -180)
    assert moment == datetime(2025, 9, 14, 15, 0, tzinfo=timezone.utc)
    assert format_hidroweb(moment, -180) == "2025-09-14 12:00:00.0"
    assert parse_local_timestamp("2025-13-01 00:00:00", -180) is None
    assert parse_local_timestamp("14/09/2025", -180) is None
    assert local_today(-180, datetime(2025, 9, 15, 2, 0, tzinfo=timezone.utc)) == "2025-09-14"


def test_relative_windows_roll_back_from_latest_record():
    records = [
        {"Data_Hora_Medicao": "2025-09-13 11:00:00.0", "Chuva_Adotada": "4.0"},
        {"Data_Hora_Medicao": "2025-09-14 11:00:00.0", "Chuva_Adotada": "1,5"},
        {"Data_Hora_Medicao": "2025-09-14 12:00:00.0", "Chuva_Adotada": "2.0"},
    ]

    windows = group_24h_windows(records, tz_offset_minutes=-180, mode="RELATIVE")

    assert [window.to_payload() for window in windows] == [
        {"data_hora_referencia": "2025-09-14 12:00:00.0", "acumulado_chuva": 3.5, "qtd_registros": 2},
        {"data_hora_referencia": "2025-09-13 12:00:00.0", "acumulado_chuva": 4.0, "qtd_registros": 1},
    ]


def test_calendar_windows_follow_local_midnight():
    records = [
        {"Data_Hora_Medicao": "2025-09-13 23:00:00.0", "Chuva_Adotada": "1.0"},
        {"Data_Hora_Medicao": "2025-09-14 01:00:00.0", "Chuva_Adotada": "2.0"},
        {"Data_Hora_Medicao": "2025-09-14 22:00:00.0", "Chuva_Adotada": "3.0"},
    ]

    windows = group_24h_windows(records, tz_offset_minutes=-180, mode="CALENDAR")

    assert [(w.reference, w.total, w.count) for w in windows] == [
        ("2025-09-15 00:00:00.0", 5.0, 2),
        ("2025-09-14 00:00:00.0", 1.0, 1),
    ]


def test_windows_absent_without_rain_values():
    records = [{"Data_Hora_Medicao": "2025-09-14 12:00:00.0", "Chuva_Adotada": None, "Cota_Adotada": "120"}]
    assert group_24h_windows(records) is None
    assert group_24h_windows([]) is None


def test_flagged_records_count_in_total_but_not_in_windows():
    records = [
        {
            "Data_Hora_Medicao": "1900-01-01 00:00:00.0",
            "_observacao": "DATA_INVALIDA",
            "_data_original": "garbage",
            "Chuva_Adotada": "2",
        },
        {"Data_Hora_Medicao": "2025-09-14 10:00:00.0", "Chuva_Adotada": "1"},
    ]

    result = accumulate(records)

    assert result.total == 3.0
    assert result.windows_payload() == [
        {"data_hora_referencia": "2025-09-14 10:00:00.0", "acumulado_chuva": 1.0, "qtd_registros": 1}
    ]
