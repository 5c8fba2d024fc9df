from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from prisma import Prisma

_prisma: Optional["Prisma"] = None


def get_prisma() -> "Prisma":
    """Return the process-wide Prisma client, creating it on first use."""
    global _prisma
    if _prisma is None:
        # Deferred so the package imports before `prisma generate` has run
        from prisma import Prisma

        _prisma = Prisma()
    return _prisma
