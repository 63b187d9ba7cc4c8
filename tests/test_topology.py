"""Tests for the pool topology."""
import pytest

from poolrota.models.topology import DEFAULT_TOPOLOGY, Edge, Position, Topology, section_from_id


class TestDefaultLayout:
    """Lookups over the shipped pool layout."""

    def test_all_positions_ordered(self):
        assert DEFAULT_TOPOLOGY.all_positions() == [
            "1.1", "1.2", "1.3", "2.1", "2.2", "2.3", "3.1", "3.2", "3.3", "4.1", "4.2",
        ]

    def test_all_sections(self):
        assert DEFAULT_TOPOLOGY.all_sections() == ["1", "2", "3", "4"]

    def test_next_position_follows_chain(self):
        assert DEFAULT_TOPOLOGY.next_position("1.1") == "1.2"
        assert DEFAULT_TOPOLOGY.next_position("1.2") == "1.3"
        assert DEFAULT_TOPOLOGY.next_position("1.3") is None

    def test_terminals(self):
        assert DEFAULT_TOPOLOGY.terminal_positions() == {"1.3", "2.3", "3.3", "4.2"}
        assert DEFAULT_TOPOLOGY.is_terminal("4.2")
        assert not DEFAULT_TOPOLOGY.is_terminal("4.1")

    def test_rest_positions(self):
        rest = {p for p in DEFAULT_TOPOLOGY.all_positions() if DEFAULT_TOPOLOGY.is_rest_position(p)}
        assert rest == {"1.2", "2.2", "3.1"}

    def test_unknown_position_lookups(self):
        """Unknown ids never raise."""
        assert DEFAULT_TOPOLOGY.next_position("9.9") is None
        assert not DEFAULT_TOPOLOGY.is_rest_position("9.9")
        assert DEFAULT_TOPOLOGY.min_age("9.9") == 0
        assert "9.9" not in DEFAULT_TOPOLOGY

    def test_next_section_wraps(self):
        assert DEFAULT_TOPOLOGY.next_section("1") == "2"
        assert DEFAULT_TOPOLOGY.next_section("4") == "1"

    def test_entry_position(self):
        assert DEFAULT_TOPOLOGY.entry_position("3") == "3.1"
        assert DEFAULT_TOPOLOGY.entry_position("9") is None

    def test_slide_seats_require_adults(self):
        assert DEFAULT_TOPOLOGY.min_age("4.1") == 18
        assert DEFAULT_TOPOLOGY.get("4.1").label == "MainPoolSlide"


class TestTopologyValidation:
    """Construction rejects malformed graphs."""

    def test_duplicate_position(self):
        with pytest.raises(ValueError, match="Duplicate"):
            Topology([Position("1.1"), Position("1.1")])

    def test_edge_to_unknown_position(self):
        with pytest.raises(ValueError, match="unknown"):
            Topology([Position("1.1")], [Edge("1.1", "1.2")])

    def test_two_outgoing_edges(self):
        with pytest.raises(ValueError, match="more than one"):
            Topology(
                [Position("1.1"), Position("1.2"), Position("1.3")],
                [Edge("1.1", "1.2"), Edge("1.1", "1.3")],
            )

    def test_section_from_id(self):
        assert section_from_id("12.3") == "12"
        assert Position("2.3").index == 3
