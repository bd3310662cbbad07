import asyncio

import pytest

from src.api.dispatcher import Dispatcher, ProxyRequest
from src.sheets.errors import BadRequestError


def _run(dispatcher, **payload):
    return asyncio.run(dispatcher.dispatch(ProxyRequest.from_payload(payload)))


@pytest.fixture
def dispatcher(sheets_cache):
    return Dispatcher(sheets_cache)


def test_get_data_returns_headers_and_indexed_rows(dispatcher):
    result = _run(dispatcher, action="getData", sheetName="Veiculo")

    assert result == {
        "headers": ["Codigo", "Descrição"],
        "rows": [{"Codigo": "EC-21.4", "Descrição": "Escavadeira", "_rowIndex": 2}],
    }


def test_get_data_on_empty_sheet(dispatcher, transport):
    transport.add_sheet("Vazia", [])

    assert _run(dispatcher, action="getData", sheetName="Vazia") == {"headers": [], "rows": []}


def test_get_data_with_explicit_range(dispatcher, transport):
    _run(dispatcher, action="getData", range="Veiculo!A1:B2")

    assert transport.calls["read_range:Veiculo!A1:B2"] == 1


def test_burst_of_get_data_calls_reads_upstream_once(dispatcher, transport, clock):
    transport.read_delay = 0.005

    async def scenario():
        tasks = []
        for _ in range(10):
            tasks.append(
                asyncio.ensure_future(
                    dispatcher.dispatch(ProxyRequest(action="getData", sheet_name="Veiculo"))
                )
            )
            clock.advance(0.02)
            await asyncio.sleep(0)
        return await asyncio.gather(*tasks)

    results = asyncio.run(scenario())

    assert transport.calls["read_range"] == 1
    assert all(result == results[0] for result in results)


def test_list_sheet_names_and_alias(dispatcher, transport):
    transport.add_sheet("Horimetros", [["Data"]])

    assert _run(dispatcher, action="listSheetNames") == ["Veiculo", "Horimetros"]
    assert _run(dispatcher, action="getSheetNames") == ["Veiculo", "Horimetros"]
    assert transport.calls["get_metadata"] == 1


def test_create_matches_headers_and_appends(dispatcher, transport):
    result = _run(dispatcher, action="create", sheetName="Veiculo", data={"codigo": "X1", "DESCRICAO": "Teste"})

    assert result == {"success": True, "message": "Row created successfully"}
    assert transport.writes == [("append", "Veiculo!A:ZZ", [["X1", "Teste"]])]


def test_create_invalidates_cached_reads(dispatcher, transport):
    _run(dispatcher, action="getData", sheetName="Veiculo")
    _run(dispatcher, action="create", sheetName="Veiculo", data={"Codigo": "X1"})
    result = _run(dispatcher, action="getData", sheetName="Veiculo")

    assert transport.calls["read_range:Veiculo!A:ZZ"] == 2
    assert result["rows"][-1] == {"Codigo": "X1", "Descrição": "", "_rowIndex": 3}


def test_update_overwrites_target_row(dispatcher, transport):
    _run(dispatcher, action="getData", sheetName="Veiculo")
    result = _run(
        dispatcher,
        action="update",
        sheetName="Veiculo",
        rowIndex=2,
        data={"Codigo": "EC-21.4", "Descricao": "Escavadeira Hidráulica"},
    )
    rows = _run(dispatcher, action="getData", sheetName="Veiculo")["rows"]

    assert result == {"success": True, "message": "Row updated successfully"}
    assert transport.writes == [("overwrite", "Veiculo!A2", ["EC-21.4", "Escavadeira Hidráulica"])]
    assert rows[0]["Descrição"] == "Escavadeira Hidráulica"


def test_delete_converts_row_index_to_zero_based_range(dispatcher, transport):
    transport.add_sheet("Veiculo", [["Codigo"], ["a"], ["b"], ["c"], ["d"]], sheet_id=42)

    result = _run(dispatcher, action="delete", sheetName="Veiculo", rowIndex=5)

    assert result == {"success": True, "message": "Row deleted successfully"}
    assert transport.writes == [("delete", 42, 4, 5)]
    assert transport.sheets["Veiculo"][-1] == ["c"]


def test_delete_invalidates_metadata(dispatcher, transport):
    _run(dispatcher, action="listSheetNames")
    _run(dispatcher, action="delete", sheetName="Veiculo", rowIndex=2)
    _run(dispatcher, action="listSheetNames")

    assert transport.calls["get_metadata"] == 2


def test_append_writes_raw_rows(dispatcher, transport):
    result = _run(dispatcher, action="append", sheetName="Veiculo", values=[["X9", "Trator"], ["X10"]])

    assert result == {"success": True, "message": "Rows appended successfully"}
    assert transport.writes == [("append", "Veiculo!A:ZZ", [["X9", "Trator"], ["X10"]])]


def test_create_fails_when_sheet_has_no_headers(dispatcher, transport):
    transport.add_sheet("Vazia", [])

    with pytest.raises(BadRequestError, match="No headers found"):
        _run(dispatcher, action="create", sheetName="Vazia", data={"a": 1})
    assert transport.writes == []


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"action": "create", "sheetName": "Veiculo"}, "sheetName and data are required for create action"),
        ({"action": "update", "sheetName": "Veiculo", "data": {}}, "sheetName, data and rowIndex are required"),
        ({"action": "delete", "rowIndex": 3}, "sheetName and rowIndex are required for delete action"),
        ({"action": "append", "sheetName": "Veiculo"}, "sheetName and values are required for append action"),
        ({"action": "getData"}, "sheetName or range is required"),
        ({"action": "explode"}, "Unknown action: explode"),
    ],
)
def test_missing_fields_and_unknown_action(dispatcher, payload, message):
    with pytest.raises(BadRequestError, match=message) as excinfo:
        _run(dispatcher, **payload)

    assert excinfo.value.action == payload["action"]


@pytest.mark.parametrize("row_index", [1, 0, -3, "abc", True, 2.5])
def test_invalid_row_index_is_rejected(row_index):
    with pytest.raises(BadRequestError, match="rowIndex"):
        ProxyRequest.from_payload({"action": "delete", "sheetName": "Veiculo", "rowIndex": row_index})


def test_row_index_accepts_integral_numbers_and_digit_strings():
    assert ProxyRequest.from_payload({"action": "delete", "rowIndex": 4.0}).row_index == 4
    assert ProxyRequest.from_payload({"action": "delete", "rowIndex": "7"}).row_index == 7


@pytest.mark.parametrize("payload", [[], "getData", {"sheetName": "Veiculo"}, {"action": ""}])
def test_envelope_validation(payload):
    with pytest.raises(BadRequestError):
        ProxyRequest.from_payload(payload)


def test_range_without_sheet_part_is_qualified_with_sheet_name(dispatcher, transport):
    _run(dispatcher, action="getData", sheetName="Veiculo", range="A1:B2")
    _run(dispatcher, action="getData", sheetName="Veiculo", range="Veiculo")

    assert transport.calls["read_range:Veiculo!A1:B2"] == 1
    assert transport.calls["read_range:Veiculo!A:ZZ"] == 1


def test_write_invalidates_reads_of_ranges_without_sheet_part(dispatcher, transport):
    _run(dispatcher, action="getData", range="A1:B5")
    _run(dispatcher, action="create", sheetName="Veiculo", data={"Codigo": "X1"})
    _run(dispatcher, action="getData", range="A1:B5")

    assert transport.calls["read_range:A1:B5"] == 2


@pytest.mark.parametrize("no_cache", ["false", 0, "yes"])
def test_no_cache_must_be_boolean(no_cache):
    with pytest.raises(BadRequestError, match="noCache must be a boolean"):
        ProxyRequest.from_payload({"action": "getData", "sheetName": "Veiculo", "noCache": no_cache})


def test_no_cache_flag_is_parsed():
    assert ProxyRequest.from_payload({"action": "getData", "noCache": True}).no_cache is True
    assert ProxyRequest.from_payload({"action": "getData"}).no_cache is False
