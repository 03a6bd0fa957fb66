"""
Character encoding normalization.

Legacy CGI sites commonly serve Shift_JIS or EUC-JP. Everything is decoded
to text here and persisted as UTF-8.
"""

import codecs

from cgifreeze.core.exceptions import EncodingError


# Shift_JIS pages from Windows-era servers almost always contain CP932
# extensions (NEC special characters, IBM extensions), so decode as CP932.
ENCODING_ALIASES = {
    'shift_jis': 'cp932',
    'shiftjis': 'cp932',
    'sjis': 'cp932',
    'cp932': 'cp932',
    'windows-31j': 'cp932',
    'windows31j': 'cp932',
    'euc-jp': 'euc_jp',
    'eucjp': 'euc_jp',
    'euc_jp': 'euc_jp',
    'utf-8': 'utf-8',
    'utf8': 'utf-8',
}


def normalize_encoding(encoding: str) -> str:
    """
    Map a configured encoding name to a Python codec name.

    Raises:
        EncodingError: if Python has no codec for the name
    """
    if not encoding or not isinstance(encoding, str):
        raise EncodingError(f"Unsupported encoding: {encoding!r}")
    name = ENCODING_ALIASES.get(encoding.strip().lower(), encoding.strip())
    try:
        return codecs.lookup(name).name
    except LookupError:
        raise EncodingError(f"Unsupported encoding: {encoding}")


def decode(data: bytes, encoding: str) -> str:
    """
    Decode bytes to text. Undecodable sequences become U+FFFD instead of
    raising.
    """
    if isinstance(data, str):
        return data
    return data.decode(normalize_encoding(encoding), errors='replace')
