"""ID generators for accounts, jobs and messages."""

from cuid2 import cuid_wrapper

cuid_generator = cuid_wrapper()


def generate_cuid() -> str:
    """Return a new CUID2 string (primary keys of all sync tables)."""
    return cuid_generator()
