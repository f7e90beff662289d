import os
from typing import Union

from azkeyvault.core.errors import MalformedInput


def read_material(value: Union[str, bytes, os.PathLike], kind: str = "key") -> bytes:
    """Accept PEM text, raw bytes, or the path of a file holding either."""
    if isinstance(value, bytes):
        return value
    text = os.fspath(value)
    if text.lstrip().startswith("-----BEGIN"):
        return text.encode("utf-8")
    if not os.path.isfile(text):
        raise MalformedInput(f"No such {kind} file: {text}")
    with open(text, "rb") as f:
        return f.read()
