"""
Unit tests for score mutation input validation.

Covers increment bounds, the timestamp replay window and action ids.
"""

import pytest

from rankstream.modules.scores.validators import (
    ACTION_ID_MAX_LENGTH,
    validate_action_id,
    validate_increment,
    validate_timestamp,
)
from rankstream.modules.shared.exceptions import ValidationError

pytestmark = pytest.mark.unit

NOW_MS = 1_700_000_000_000


class TestIncrement:
    """Test increment bounds."""

    @pytest.mark.parametrize("value", [1, 10, 1000])
    def test_accepts_values_in_range(self, fake_config, value):
        """Integers within [1, 1000] pass unchanged."""
        assert validate_increment(value, fake_config) == value

    @pytest.mark.parametrize("value", [0, -5, 1001])
    def test_rejects_out_of_range(self, fake_config, value):
        """Zero, negatives and values above the maximum are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            validate_increment(value, fake_config)

        assert exc_info.value.field == "score_increment"
        assert exc_info.value.error_code == "VALIDATION_SCORE_INCREMENT"

    @pytest.mark.parametrize("value", [1.5, "10", None, True, [1]])
    def test_rejects_non_integers(self, fake_config, value):
        """Floats, strings, booleans and missing values are rejected."""
        with pytest.raises(ValidationError):
            validate_increment(value, fake_config)

    def test_bounds_come_from_config(self, fake_config):
        """A configured maximum overrides the default."""
        fake_config.values["scores.increment.max"] = 50

        assert validate_increment(50, fake_config) == 50
        with pytest.raises(ValidationError):
            validate_increment(51, fake_config)


class TestTimestamp:
    """Test the replay window."""

    def test_missing_timestamp_passes(self, fake_config):
        """No timestamp means no replay check."""
        assert validate_timestamp(None, fake_config, now_ms=NOW_MS) is None

    def test_recent_timestamp_passes(self, fake_config):
        """A timestamp inside the window is accepted."""
        value = NOW_MS - 299_000
        assert validate_timestamp(value, fake_config, now_ms=NOW_MS) == value

    def test_stale_timestamp_rejected(self, fake_config):
        """A timestamp older than five minutes is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            validate_timestamp(NOW_MS - 301_000, fake_config, now_ms=NOW_MS)

        assert exc_info.value.field == "timestamp"

    def test_future_timestamp_rejected(self, fake_config):
        """Clock skew beyond the window is rejected in both directions."""
        with pytest.raises(ValidationError):
            validate_timestamp(NOW_MS + 301_000, fake_config, now_ms=NOW_MS)

    @pytest.mark.parametrize("value", ["1700000000000", 1.7e12, False])
    def test_rejects_non_integer_timestamp(self, fake_config, value):
        """Timestamps must be integer milliseconds."""
        with pytest.raises(ValidationError):
            validate_timestamp(value, fake_config, now_ms=NOW_MS)


class TestActionId:
    """Test action id checks."""

    def test_none_is_allowed(self):
        assert validate_action_id(None) is None

    def test_opaque_string_passes(self):
        assert validate_action_id("quest-42") == "quest-42"

    @pytest.mark.parametrize("value", ["", "   ", 42])
    def test_blank_or_non_string_rejected(self, value):
        """Blank strings and non-strings are rejected."""
        with pytest.raises(ValidationError):
            validate_action_id(value)

    def test_overlong_rejected(self):
        """Action ids longer than the column width are rejected."""
        with pytest.raises(ValidationError):
            validate_action_id("x" * (ACTION_ID_MAX_LENGTH + 1))
