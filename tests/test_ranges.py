import pytest

from src.sheets.ranges import header_range, quote_sheet_name, range_sheet_name, row_range, sheet_range


def test_bare_sheet_names_are_not_quoted():
    assert sheet_range("Veiculo") == "Veiculo!A:ZZ"
    assert header_range("Veiculo") == "Veiculo!1:1"
    assert row_range("Veiculo", 5) == "Veiculo!A5"


def test_names_with_spaces_accents_or_quotes_are_quoted():
    assert quote_sheet_name("Ordem Serviço") == "'Ordem Serviço'"
    assert quote_sheet_name("Joe's") == "'Joe''s'"
    assert sheet_range("Abastecimento-01") == "'Abastecimento-01'!A:ZZ"


@pytest.mark.parametrize(
    "range_ref, expected",
    [
        ("Veiculo!A:ZZ", "Veiculo"),
        ("Veiculo", "Veiculo"),
        ("'Ordem Serviço'!A2", "Ordem Serviço"),
        ("'Joe''s'!1:1", "Joe's"),
        ("'Veiculo'!A:B", "Veiculo"),
        ("", None),
        ("'unterminated", None),
    ],
)
def test_range_sheet_name(range_ref, expected):
    assert range_sheet_name(range_ref) == expected
