"""Tests for state generation and comparison."""

from app.core.security import generate_state, states_match


class TestGenerateState:
    """Tests for generate_state."""

    def test_length(self):
        """32 bytes of entropy render as at least 43 url-safe characters."""
        assert len(generate_state()) >= 43

    def test_unique(self):
        assert len({generate_state() for _ in range(1000)}) == 1000

    def test_url_safe(self):
        state = generate_state()
        assert all(c.isalnum() or c in "-_" for c in state)


class TestStatesMatch:
    """Tests for states_match."""

    def test_equal(self):
        assert states_match("abc", "abc") is True

    def test_different(self):
        assert states_match("abc", "abd") is False
        assert states_match("abc", "abc ") is False

    def test_empty_never_matches(self):
        assert states_match("", "") is False
        assert states_match(None, None) is False
        assert states_match("abc", None) is False
