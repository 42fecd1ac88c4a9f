"""Mapping between logical keys and S3 object names."""

import base64
import binascii

from s3kv.exceptions import KeyDecodeError


class KeyCodec:
    """Encodes keys as ``prefix + base64(utf-8 key)``.

    Base64 keeps arbitrary key content (slashes, control characters,
    unicode) out of the object name, so names are always safe for S3.
    """

    def __init__(self, prefix: str = "") -> None:
        self.prefix = prefix or ""

    def encode(self, key: str) -> str:
        return self.prefix + base64.b64encode(key.encode("utf-8")).decode("ascii")

    def decode(self, name: str) -> str:
        """Recover the logical key from an object name listed under the prefix.

        Raises:
            KeyDecodeError: If the name is not under the prefix or is not
                valid base64/UTF-8
        """
        if not name.startswith(self.prefix):
            raise KeyDecodeError(f"Object name {name!r} is outside prefix {self.prefix!r}")
        try:
            raw = base64.b64decode(name[len(self.prefix):], validate=True)
            return raw.decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise KeyDecodeError(f"Object name {name!r} is not an encoded key") from e
