"""Base62 codec tests."""

import pytest

from linkly.codec import BASE62_ALPHABET, capacity, decode, encode, estimated_length, is_valid_code
from linkly.exceptions import CodecError, EmptyInputError, InvalidCharacterError


class TestEncode:
    @pytest.mark.parametrize(
        ("number", "expected"),
        [(0, "0"), (9, "9"), (10, "a"), (35, "z"), (36, "A"), (61, "Z"), (62, "10"), (3843, "ZZ"), (3844, "100")],
    )
    def test_known_values(self, number: int, expected: str) -> None:
        assert encode(number) == expected

    def test_alphabet_order(self) -> None:
        assert BASE62_ALPHABET == "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
        assert [encode(i) for i in range(62)] == list(BASE62_ALPHABET)

    def test_negative_rejected(self) -> None:
        with pytest.raises(ValueError):
            encode(-1)

    @pytest.mark.parametrize("value", [1.5, "12", None, True])
    def test_non_integer_rejected(self, value: object) -> None:
        with pytest.raises(ValueError):
            encode(value)  # type: ignore[arg-type]

    def test_sequential_codes_are_distinct(self) -> None:
        codes = [encode(i) for i in range(1, 1001)]
        assert len(set(codes)) == 1000

    def test_length_grows_with_magnitude(self) -> None:
        assert len(encode(61)) == 1
        assert len(encode(62)) == 2
        assert len(encode(62**7 - 1)) == 7
        assert len(encode(62**7)) == 8


class TestDecode:
    @pytest.mark.parametrize("number", [0, 1, 61, 62, 12345, 2**53 + 1, 62**10 - 1, 2**64])
    def test_inverse_of_encode(self, number: int) -> None:
        assert decode(encode(number)) == number

    def test_empty_input(self) -> None:
        with pytest.raises(EmptyInputError) as exc_info:
            decode("")
        assert exc_info.value.error_code == "codec:empty_input"

    def test_invalid_character_reports_position(self) -> None:
        with pytest.raises(InvalidCharacterError) as exc_info:
            decode("ab-c")
        assert exc_info.value.character == "-"
        assert exc_info.value.position == 2

    def test_codec_errors_are_value_errors(self) -> None:
        with pytest.raises(ValueError):
            decode("!")
        assert issubclass(EmptyInputError, CodecError)

    def test_leading_zeros_decode_to_same_value(self) -> None:
        assert decode("0010") == decode("10") == 62


class TestCapacity:
    def test_capacity(self) -> None:
        assert capacity(0) == 1
        assert capacity(1) == 62
        assert capacity(7) == 3_521_614_606_208

    def test_negative_length_rejected(self) -> None:
        with pytest.raises(ValueError):
            capacity(-1)

    @pytest.mark.parametrize(
        ("count", "length"),
        [(0, 1), (1, 1), (62, 1), (63, 2), (3844, 2), (3845, 3), (1_000_000_000, 6)],
    )
    def test_estimated_length(self, count: int, length: int) -> None:
        assert estimated_length(count) == length


@pytest.mark.parametrize(
    ("code", "valid"),
    [("1", True), ("aZ09", True), ("", False), ("abc-", False), ("a" * 10, True), ("a" * 11, False), ("ä", False)],
)
def test_is_valid_code(code: str, valid: bool) -> None:
    assert is_valid_code(code) is valid
