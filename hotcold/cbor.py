"""
Selects the cbor2 implementation used by every codec in the package.

The pure Python build (cbor2pure) is the default because the serialization layer
patches its decoder tables. Set CBOR_C_EXTENSION=1 to load the C extension instead.
"""

import os

if os.getenv("CBOR_C_EXTENSION", "0") == "1":
    import cbor2  # noqa: F401
else:
    import cbor2pure as cbor2  # type: ignore  # noqa: F401
