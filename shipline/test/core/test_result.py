"""Tests for shipline.core.result module."""

import pytest

from shipline.core.result import Err, Ok, Result, is_err, is_ok


class TestOk:
    """Tests for Ok type."""

    def test_ok_holds_value(self) -> None:
        result = Ok(42)
        assert result.value == 42
        assert result.is_ok() is True
        assert result.is_err() is False

    def test_ok_unwrap(self) -> None:
        assert Ok("x").unwrap() == "x"

    def test_ok_unwrap_or_ignores_default(self) -> None:
        assert Ok(42).unwrap_or(0) == 42

    def test_ok_map(self) -> None:
        assert Ok(2).map(lambda v: v * 10) == Ok(20)

    def test_repr(self) -> None:
        assert repr(Ok(1)) == "Ok(1)"


class TestErr:
    """Tests for Err type."""

    def test_err_holds_error(self) -> None:
        result = Err("boom")
        assert result.error == "boom"
        assert result.is_ok() is False
        assert result.is_err() is True

    def test_err_unwrap_raises(self) -> None:
        with pytest.raises(ValueError, match="called unwrap on Err: boom"):
            Err("boom").unwrap()

    def test_err_unwrap_or_returns_default(self) -> None:
        assert Err("boom").unwrap_or(7) == 7

    def test_err_map_is_identity(self) -> None:
        err = Err("boom")
        assert err.map(lambda v: v) is err


class TestGuards:
    def test_is_ok_and_is_err(self) -> None:
        good: Result[int, str] = Ok(1)
        bad: Result[int, str] = Err("no")
        assert is_ok(good) and not is_err(good)
        assert is_err(bad) and not is_ok(bad)

    def test_pattern_matching(self) -> None:
        result: Result[int, str] = Err("nope")
        match result:
            case Ok(value):
                pytest.fail(f"unexpected Ok({value})")
            case Err(error):
                assert error == "nope"
