"""Tests for guard identity resolution."""
from poolrota.models.personnel import Guard
from poolrota.services.identity import build_name_index, canonicalize, normalize_name, strip_prefix


class TestNormalization:

    def test_strip_prefix(self):
        assert strip_prefix("GUARD#g-01") == "g-01"
        assert strip_prefix("g-01") == "g-01"
        assert strip_prefix(None) == ""

    def test_normalize_name(self):
        assert normalize_name("  Zoé MARTIN ") == "zoe martin"
        assert normalize_name("Ångström") == "angstrom"
        assert normalize_name("") == ""

    def test_name_index_first_wins(self):
        index = build_name_index([
            Guard(id="a", name="Léa"),
            Guard(id="b", name="lea"),
            Guard(id="c", name=""),
        ])
        assert index == {"lea": "a"}


class TestCanonicalize:

    known = {"g-01", "g-02"}
    index = {"zoe martin": "g-02"}

    def test_known_id_unchanged(self):
        assert canonicalize("g-01", self.known, self.index) == "g-01"

    def test_prefixed_id(self):
        assert canonicalize("GUARD#g-01", self.known, self.index) == "g-01"

    def test_name_lookup(self):
        assert canonicalize(" ZOÉ Martin ", self.known, self.index) == "g-02"

    def test_unresolvable(self):
        assert canonicalize("Nobody", self.known, self.index) is None
        assert canonicalize("", self.known, self.index) is None
        assert canonicalize(None, self.known, self.index) is None
