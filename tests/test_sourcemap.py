"""Tests for the VLQ decoder and the position index."""

import pytest

from sourcelens.sourcemap import (
    ColumnMapping,
    MappingDecodeError,
    PositionIndex,
    decode_mappings,
    decode_segment,
    decode_vlq,
    encode_mappings,
    encode_vlq,
    map_position,
)


class TestVLQ:
    """Tests for single-value encoding and decoding."""

    @pytest.mark.parametrize("value", [0, -1, 1, 31, -31, 32, 1000000, -1000000])
    def test_round_trip(self, value: int):
        """Encoding then decoding reproduces the value."""
        encoded = encode_vlq(value)
        decoded, pos = decode_vlq(encoded)
        assert decoded == value
        assert pos == len(encoded)

    def test_known_digits(self):
        """Digits match the standard source-map alphabet."""
        assert encode_vlq(0) == "A"
        assert encode_vlq(1) == "C"
        assert encode_vlq(-1) == "D"
        assert encode_vlq(16) == "gB"

    def test_decode_segment_fields(self):
        assert decode_segment("AAgBC") == [0, 0, 16, 1]

    def test_invalid_digit_raises(self):
        with pytest.raises(MappingDecodeError):
            decode_vlq("!")

    def test_unterminated_value_raises(self):
        """A trailing digit with the continuation bit set is malformed."""
        with pytest.raises(MappingDecodeError):
            decode_vlq("g")


class TestDecodeMappings:
    """Tests for building a PositionIndex from a mappings string."""

    def test_line_accumulators_carry_across_lines(self):
        index = decode_mappings("AAAA;AACA;AACA")
        assert index.line_map == {1: 1, 2: 2, 3: 3}
        assert not index.truncated

    def test_single_field_segment_is_not_indexed(self):
        """Copy-through text has no original position."""
        index = decode_mappings("A,CAEA")
        assert index.line_map == {3: 1}

    def test_smallest_generated_line_wins(self):
        index = decode_mappings("AAAA;AAAC")
        assert index.line_map == {1: 1}
        assert index.col_map[1] == [ColumnMapping(0, 1), ColumnMapping(1, 2)]

    def test_generated_column_resets_per_line(self):
        """Columns of the original keep accumulating; generated ones reset."""
        index = decode_mappings("CAAC,CAAC;CAAC")
        assert [c.original_column for c in index.col_map[1]] == [1, 2, 3]
        assert [c.generated_line for c in index.col_map[1]] == [1, 1, 2]

    def test_name_field_is_accepted(self):
        index = decode_mappings("AAAAA;AACAC")
        assert index.line_map == {1: 1, 2: 2}

    def test_malformed_segment_keeps_partial_index(self):
        index = decode_mappings("AAAA;AACA,!!;AACA")
        assert index.truncated
        assert index.line_map == {1: 1, 2: 2}
        assert 3 not in index.line_map

    def test_two_field_segment_is_malformed(self):
        index = decode_mappings("AAAA;AA")
        assert index.truncated
        assert index.line_map == {1: 1}

    def test_empty_segments_are_skipped(self):
        index = decode_mappings(";;AAAA,,")
        assert index.line_map == {1: 3}

    def test_encode_then_decode(self):
        points = [(0, 0, 0, 0), (0, 4, 0, 2), (2, 0, 1, 0), (3, 2, 5, 7)]
        index = decode_mappings(encode_mappings(points))
        assert index.line_map == {1: 1, 2: 3, 6: 4}
        assert index.map_position(6, 7) == 4


class TestMapPosition:
    """Tests for original → generated line lookups."""

    def test_column_floor_match(self):
        index = PositionIndex(
            line_map={3: 5},
            col_map={3: [ColumnMapping(0, 5), ColumnMapping(10, 7)]},
        )
        assert index.map_position(3, 4) == 5
        assert index.map_position(3, 15) == 7
        assert index.map_position(3, 10) == 7

    def test_column_before_first_entry_uses_line(self):
        index = PositionIndex(line_map={3: 5}, col_map={3: [ColumnMapping(6, 8)]})
        assert index.map_position(3, 2) == 5

    def test_without_column_uses_line_map(self):
        index = PositionIndex(line_map={3: 5}, col_map={3: [ColumnMapping(10, 7)]})
        assert index.map_position(3) == 5

    def test_scans_upward_for_unmapped_line(self):
        index = PositionIndex(line_map={2: 4})
        assert index.map_position(5) == 4

    def test_identity_when_nothing_above(self):
        index = PositionIndex(line_map={10: 20})
        assert index.map_position(3) == 3

    def test_identity_without_index(self):
        assert map_position(None, 42, 7) == 42

    @pytest.mark.parametrize("line", [1, 2, 50])
    def test_identity_when_decoding_fails_entirely(self, line: int):
        index = decode_mappings("!!!!")
        assert index.truncated
        assert map_position(index, line, 3) == line
