"""Tests for forge.core.result module."""

import pytest

from forge.core.result import Err, Ok, Result, is_err, is_ok


def _tag(sha: str) -> Result[str, str]:
    if not sha:
        return Err("no git sha")
    return Ok(f"amd64-{sha}")


class TestOk:
    def test_value(self) -> None:
        result = Ok(42)
        assert result.value == 42
        assert result.is_ok() is True
        assert result.is_err() is False
        assert result.unwrap() == 42
        assert result.unwrap_or(0) == 42

    def test_unwrap_err_raises(self) -> None:
        with pytest.raises(ValueError):
            Ok(1).unwrap_err()

    def test_map(self) -> None:
        assert Ok(2).map(lambda x: x * 2) == Ok(4)
        assert Ok(2).map_err(str) == Ok(2)


class TestErr:
    def test_error(self) -> None:
        result = Err("boom")
        assert result.error == "boom"
        assert result.is_err() is True
        assert result.unwrap_or(7) == 7
        assert result.unwrap_err() == "boom"

    def test_unwrap_raises(self) -> None:
        with pytest.raises(ValueError, match="boom"):
            Err("boom").unwrap()

    def test_map_err(self) -> None:
        assert Err("x").map_err(str.upper) == Err("X")
        assert Err("x").map(lambda v: v) == Err("x")


class TestMatching:
    def test_match_ok(self) -> None:
        match _tag("abc123"):
            case Ok(tag):
                assert tag == "amd64-abc123"
            case Err(_):
                pytest.fail("expected Ok")

    def test_guards(self) -> None:
        assert is_ok(_tag("abc"))
        assert is_err(_tag(""))
