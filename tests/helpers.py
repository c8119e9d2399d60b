"""
tests/helpers.py -- Plain helpers shared by test modules and conftest.py.

Importable as `helpers` because pytest puts tests/ on sys.path
(see [tool.pytest.ini_options] pythonpath).
"""

from __future__ import annotations

PASSWORD = "secret123"


def set_cookies(resp) -> dict[str, str]:
    """Return {name: value} for every Set-Cookie header on resp.

    Deleted cookies show up with an empty value.
    """
    out: dict[str, str] = {}
    for header in resp.headers.get_list("set-cookie"):
        name, _, rest = header.partition("=")
        out[name.strip()] = rest.split(";", 1)[0].strip().strip('"')
    return out
