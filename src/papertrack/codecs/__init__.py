"""Import/export codecs for CSV, JSON and BibTeX."""

from .base import CodecError, DecodeResult, coalesce_legacy_fields, legacy_fields
from .bibtex import citation_key, decode_bibtex, encode_bibtex
from .csv_codec import decode_csv, encode_csv, parse_csv_line
from .json_codec import decode_json, encode_json

FORMATS = {
    "csv": (encode_csv, decode_csv),
    "json": (encode_json, decode_json),
    "bibtex": (encode_bibtex, decode_bibtex),
}

EXTENSIONS = {
    ".csv": "csv",
    ".json": "json",
    ".bib": "bibtex",
    ".bibtex": "bibtex",
}

FILE_SUFFIX = {"csv": "csv", "json": "json", "bibtex": "bib"}

__all__ = [
    "CodecError",
    "DecodeResult",
    "EXTENSIONS",
    "FILE_SUFFIX",
    "FORMATS",
    "citation_key",
    "coalesce_legacy_fields",
    "decode_bibtex",
    "decode_csv",
    "decode_json",
    "encode_bibtex",
    "encode_csv",
    "encode_json",
    "legacy_fields",
    "parse_csv_line",
]
