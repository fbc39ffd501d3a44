# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for the matrix text codec.

We verify:
  1. Round trips through files, binary streams and text streams
  2. Exact output bytes for small matrices, including empty ones
  3. Reading quirks: line endings, zero values, tiny buffers
  4. Format errors and the row/vector reader protocol
"""

import io
import logging
from pathlib import Path

import pytest

from linearstream.config.schema import CodecConfig
from linearstream.errors import CodecOverflowError, FormatError, InvalidStateError
from linearstream.matrix.codec import MatrixRowReader, load_matrix, read_rows, save_matrix
from linearstream.matrix.core import FeatureMatrix
from linearstream.matrix.vector import FeatureNode


def dumps(matrix: FeatureMatrix, config: CodecConfig = None) -> bytes:  # type: ignore[assignment]
    stream = io.BytesIO()
    save_matrix(matrix, stream, config)
    return stream.getvalue()


def loads(data: bytes, config: CodecConfig = None) -> FeatureMatrix:  # type: ignore[assignment]
    return load_matrix(io.BytesIO(data), config)


class TestSave:
    def test_exact_output(self) -> None:
        matrix = FeatureMatrix.from_iterable([(1, {1: 0.5, 3: -1.25}), (-1, {2: 2.0})])
        assert dumps(matrix) == b"1.0 1:0.5 3:-1.25\n-1.0 2:2.0\n"

    def test_empty_vector_is_label_only_line(self) -> None:
        matrix = FeatureMatrix.from_iterable([(3, {})])
        assert dumps(matrix) == b"3.0\n"

    def test_empty_matrix_writes_nothing(self) -> None:
        assert dumps(FeatureMatrix.from_iterable([])) == b""

    def test_text_stream(self) -> None:
        stream = io.StringIO()
        FeatureMatrix.from_iterable([(1, [2.0])]).save(stream)
        assert stream.getvalue() == "1.0 1:2.0\n"

    def test_tiny_writer_buffer(self, sample_matrix: FeatureMatrix, tiny_config: CodecConfig) -> None:
        assert dumps(sample_matrix, tiny_config) == dumps(sample_matrix)


class TestRoundTrip:
    def test_through_file(self, tmp_path: Path, sample_matrix: FeatureMatrix) -> None:
        target = tmp_path / "train.txt"
        sample_matrix.save(target)
        loaded = FeatureMatrix.load(target)

        assert loaded.height == sample_matrix.height
        assert loaded.width == sample_matrix.width
        assert list(loaded.labels()) == list(sample_matrix.labels())
        assert list(loaded.rows()) == list(sample_matrix.rows())

    def test_with_tiny_buffers(self, sample_matrix: FeatureMatrix, tiny_config: CodecConfig) -> None:
        loaded = loads(dumps(sample_matrix), tiny_config)
        assert list(loaded.rows()) == list(sample_matrix.rows())

    def test_extreme_values(self) -> None:
        matrix = FeatureMatrix.from_iterable(
            [(0.1, {2**31 - 1: 5e-324, 1: 1.7976931348623157e308}), (-0.0, [0.1 + 0.2])]
        )
        loaded = loads(dumps(matrix))
        assert list(loaded.rows()) == list(matrix.rows())
        assert loaded.width == 2**31 - 1

    def test_empty_matrix(self) -> None:
        loaded = loads(dumps(FeatureMatrix.from_iterable([])))
        assert loaded.height == 0
        assert loaded.width == 0


class TestLoad:
    @pytest.mark.parametrize(
        "data", [b"1 2:3.5 4:-1\n5 \n", b"1 2:3.5 4:-1\r\n5\r\n", b"1 2:3.5 4:-1\r5", b"1\t2:3.5  4:-1\n5"]
    )
    def test_line_endings_and_spacing(self, data: bytes) -> None:
        matrix = loads(data)
        assert list(matrix.labels()) == [1.0, 5.0]
        assert list(matrix.features()) == [{2: 3.5, 4: -1.0}, {}]
        assert matrix.width == 4

    def test_zero_values_are_dropped(self) -> None:
        matrix = loads(b"1 1:0 2:0.0 3:1\n")
        assert list(matrix.features()) == [{3: 1.0}]

    def test_logs_dimensions(self) -> None:
        records: list[logging.LogRecord] = []

        class Collect(logging.Handler):
            def emit(self, record: logging.LogRecord) -> None:
                records.append(record)

        codec_logger = logging.getLogger("linearstream.matrix.codec")
        handler = Collect()
        codec_logger.addHandler(handler)
        try:
            loads(b"1 3:1\n", CodecConfig(log_level="INFO"))
        finally:
            codec_logger.removeHandler(handler)

        loaded = [record for record in records if record.getMessage() == "Matrix loaded"]
        assert len(loaded) == 1
        assert loaded[0].height == 1  # type: ignore[attr-defined]
        assert loaded[0].width == 3  # type: ignore[attr-defined]

    @pytest.mark.parametrize(
        "data",
        [
            b"x 1:1\n",
            b"1 1\n",
            b"1 a:1\n",
            b"1 1:b\n",
            b"1 0:1\n",
            b"1 -2:1\n",
            b"1 1:1_0\n",
            b"1 3:1 2:1\n",
            b"1 2:1 2:3\n",
            b"1 1:1\n\n2 1:1\n",
        ],
    )
    def test_format_errors(self, data: bytes) -> None:
        with pytest.raises(FormatError):
            loads(data)

    def test_index_overflow(self) -> None:
        with pytest.raises(CodecOverflowError):
            loads(b"1 2147483648:1\n")

    def test_source_errors_propagate(self) -> None:
        class Broken:
            def read(self, size: int) -> bytes:
                raise OSError("network down")

        with pytest.raises(OSError, match="network down"):
            load_matrix(Broken())


class TestRowReader:
    def test_rows_and_vectors(self) -> None:
        reader = read_rows(io.BytesIO(b"1 1:2\n-1 3:4 5:6\n").read)
        label, vector = reader.advance()
        assert label == 1.0
        assert list(vector) == [FeatureNode(1, 2.0)]

        label, vector = reader.advance()
        assert label == -1.0
        assert vector.advance() == FeatureNode(3, 4.0)
        assert vector.advance() == FeatureNode(5, 6.0)
        assert vector.advance() is None

        assert reader.advance() is None

    def test_next_row_before_vector_drained(self) -> None:
        reader = read_rows(io.BytesIO(b"1 1:2 2:3\n2\n").read)
        _, vector = reader.advance()
        vector.advance()
        with pytest.raises(InvalidStateError):
            reader.advance()

    def test_empty_line_where_label_expected(self) -> None:
        reader = read_rows(io.BytesIO(b"\n1\n").read)
        with pytest.raises(FormatError):
            reader.advance()

    def test_dispose_disposes_tokenizer(self) -> None:
        reader = read_rows(io.BytesIO(b"1 1:2\n").read)
        assert isinstance(reader, MatrixRowReader)
        _, vector = reader.advance()
        reader.dispose()
        assert reader.tokens.disposed
        assert vector.disposed
        assert reader.advance() is None
