"""Tests for scalar codecs."""

import datetime
import uuid

import pytest

from entity_tables.codec import BoundParameter, codec_for
from entity_tables.errors import UnsupportedTypeError
from entity_tables.types import ScalarKind


class TestEncode:
    """Tests for binding Python values."""

    def test_none_binds_typed_null(self):
        """Test that an absent value binds NULL tagged with the column's kind."""
        param = codec_for(ScalarKind.INT32).encode(None)

        assert param == BoundParameter(ScalarKind.INT32, None)
        assert param.is_null

    def test_zero_is_not_null(self):
        """Test that zero and empty text are real values."""
        assert not codec_for(ScalarKind.INT64).encode(0).is_null
        assert codec_for(ScalarKind.TEXT).encode("").value == ""

    def test_boolean_binds_as_integer(self):
        """Test that booleans are stored as 0/1."""
        codec = codec_for(ScalarKind.BOOLEAN)

        assert codec.encode(True).value == 1
        assert codec.encode(False).value == 0

    def test_uuid_binds_as_text(self):
        """Test that UUIDs bind in canonical text form."""
        value = uuid.uuid4()
        codec = codec_for(ScalarKind.UUID)

        assert codec.encode(value).value == str(value)
        assert codec.encode(str(value).upper()).value == str(value)

    def test_timestamp_binds_as_iso_text(self):
        """Test that timestamps bind as ISO-8601 text."""
        moment = datetime.datetime(2024, 5, 17, 12, 30, 1)

        assert codec_for(ScalarKind.TIMESTAMP).encode(moment).value == "2024-05-17T12:30:01"

    def test_wrong_type_names_column(self):
        """Test that a mismatched value raises with the column name."""
        with pytest.raises(UnsupportedTypeError, match="column 'age'"):
            codec_for(ScalarKind.INT32).encode("twelve", "age")

    def test_bool_is_not_an_integer(self):
        """Test that bool values are rejected by integer columns."""
        with pytest.raises(UnsupportedTypeError):
            codec_for(ScalarKind.INT16).encode(True)

    @pytest.mark.parametrize(
        "kind, value",
        [
            (ScalarKind.INT16, 70000),
            (ScalarKind.INT16, -32769),
            (ScalarKind.INT32, 2**31),
            (ScalarKind.INT64, -(2**63) - 1),
        ],
    )
    def test_integer_out_of_range(self, kind, value):
        """Test that integers too wide for the column are rejected with its name."""
        message = rf"Value {value} is out of range for {kind.value} \(column 'level'\)"
        with pytest.raises(UnsupportedTypeError, match=message):
            codec_for(kind).encode(value, "level")

    def test_integer_range_bounds(self):
        """Test that the extremes of each width still bind."""
        assert codec_for(ScalarKind.INT16).encode(32767).value == 32767
        assert codec_for(ScalarKind.INT16).encode(-32768).value == -32768
        assert codec_for(ScalarKind.INT32).encode(70000).value == 70000
        assert codec_for(ScalarKind.INT64).encode(2**40).value == 2**40

    def test_invalid_uuid_string(self):
        """Test that malformed UUID text is rejected."""
        with pytest.raises(UnsupportedTypeError, match="Invalid UUID"):
            codec_for(ScalarKind.UUID).encode("not-a-uuid", "id")

    def test_float_accepts_integers(self):
        """Test that integral values widen to float."""
        assert codec_for(ScalarKind.DOUBLE).encode(3).value == 3.0

    def test_unknown_kind(self):
        """Test that a kind outside the closed set is rejected."""
        with pytest.raises(UnsupportedTypeError):
            codec_for("decimal")


class TestDecode:
    """Tests for reading values back from rows."""

    def test_null_decodes_as_none(self):
        """Test that SQL NULL is distinguished from zero."""
        codec = codec_for(ScalarKind.INT32)

        assert codec.decode({"age": None}, "age") is None
        assert codec.decode({"age": 0}, "age") == 0

    def test_decode_boolean(self):
        """Test decoding stored booleans."""
        codec = codec_for(ScalarKind.BOOLEAN)

        assert codec.decode({"flag": 1}, "flag") is True
        assert codec.decode({"flag": 0}, "flag") is False
        assert codec.decode({"flag": "true"}, "flag") is True

    def test_decode_uuid(self):
        """Test decoding UUIDs from text and bytes."""
        value = uuid.uuid4()
        codec = codec_for(ScalarKind.UUID)

        assert codec.decode({"id": str(value)}, "id") == value
        assert codec.decode({"id": value.bytes}, "id") == value

    def test_decode_timestamp(self):
        """Test decoding ISO-8601 text into datetimes."""
        codec = codec_for(ScalarKind.TIMESTAMP)

        decoded = codec.decode({"at": "2024-05-17T12:30:01"}, "at")

        assert decoded == datetime.datetime(2024, 5, 17, 12, 30, 1)

    def test_decode_bad_timestamp(self):
        """Test that unreadable timestamps raise."""
        with pytest.raises(UnsupportedTypeError, match="column 'at'"):
            codec_for(ScalarKind.TIMESTAMP).decode({"at": "yesterday"}, "at")


class TestScalarKind:
    """Tests for kind metadata."""

    def test_sql_types(self):
        """Test the column type emitted per kind."""
        assert ScalarKind.TEXT.sql_type == "TEXT"
        assert ScalarKind.INT16.sql_type == "SMALLINT"
        assert ScalarKind.INT32.sql_type == "INTEGER"
        assert ScalarKind.INT64.sql_type == "BIGINT"
        assert ScalarKind.DOUBLE.sql_type == "DOUBLE"
        assert ScalarKind.FLOAT.sql_type == "REAL"
        assert ScalarKind.BOOLEAN.sql_type == "BOOLEAN"
        assert ScalarKind.UUID.sql_type == "TEXT"
        assert ScalarKind.TIMESTAMP.sql_type == "TIMESTAMP"
