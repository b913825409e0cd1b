"""Flat-file record store.

Every collection is one comma-separated file. A field is quoted only when it
contains a comma, a quote or a newline; quotes inside a field are doubled.
``parse_records(format_records(rows)) == rows`` for any rows of strings.
"""
import csv
import io
import logging
import os

from crowdfunding.errors import StorageError

logger = logging.getLogger(__name__)

ENCODING = "utf-8"


def _writer(stream):
    return csv.writer(stream, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")


def _clean(record):
    return ["" if field is None else str(field) for field in record]


def format_records(records):
    buf = io.StringIO(newline="")
    writer = _writer(buf)
    for record in records:
        writer.writerow(_clean(record))
    return buf.getvalue()


def parse_records(text):
    return [list(row) for row in csv.reader(io.StringIO(text, newline=""))]


class CsvStore:
    """Loads and saves whole collection files inside one data directory."""

    def __init__(self, data_dir):
        self.data_dir = os.fspath(data_dir)

    def path(self, name):
        return os.path.join(self.data_dir, name)

    def load(self, name):
        path = self.path(name)
        if not os.path.exists(path):
            return []
        try:
            with open(path, newline="", encoding=ENCODING) as f:
                return [list(row) for row in csv.reader(f)]
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            logger.error("Could not read %s: %s", path, e)
            raise StorageError(name, e) from e

    def save(self, name, records):
        # whole-file overwrite: write a sibling file, then swap it in
        path = self.path(name)
        tmp_path = path + ".tmp"
        try:
            os.makedirs(self.data_dir, exist_ok=True)
            with open(tmp_path, "w", newline="", encoding=ENCODING) as f:
                writer = _writer(f)
                for record in records:
                    writer.writerow(_clean(record))
            os.replace(tmp_path, path)
        except OSError as e:
            logger.error("Could not write %s: %s", path, e)
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StorageError(name, e) from e
