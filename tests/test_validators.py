"""
Tests for the validators module.
"""

import pytest
from fastapi import HTTPException

from crypto_watchlist.api.validators import validate_coin_id, validate_timeframe


class TestValidators:
    """Test cases for validation functions."""

    @pytest.mark.parametrize(
        "coin_id",
        ["bitcoin", "usd-coin", "wrapped_bitcoin", "0x", "matic-network", "a.b"],
    )
    def test_validate_coin_id_valid(self, coin_id):
        """Test validation for well-formed provider ids."""
        assert validate_coin_id(coin_id) == coin_id

    @pytest.mark.parametrize(
        "coin_id",
        ["", "-bitcoin", "bit coin", "../etc", "bitcoin?x=1", "a" * 129],
    )
    def test_validate_coin_id_invalid(self, coin_id):
        """Test validation rejects ids unsafe for provider URLs."""
        with pytest.raises(HTTPException) as exc_info:
            validate_coin_id(coin_id)

        assert exc_info.value.status_code == 422
        assert exc_info.value.detail["error"] == "invalid_coin_id"

    @pytest.mark.parametrize(
        "timeframe,expected",
        [("1h", "1H"), ("24H", "24H"), ("7d", "7D"), ("1y", "1Y")],
    )
    def test_validate_timeframe(self, timeframe, expected):
        assert validate_timeframe(timeframe) == expected

    def test_validate_timeframe_unknown(self):
        with pytest.raises(HTTPException) as exc_info:
            validate_timeframe("5Y")

        assert exc_info.value.status_code == 422
        assert exc_info.value.detail["error"] == "invalid_timeframe"
        assert "24H" in exc_info.value.detail["message"]
