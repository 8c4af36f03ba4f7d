# util/types.py
from typing import Awaitable, Callable

# Called once per outgoing request; the core never caches the token.
TokenProvider = Callable[[], Awaitable[str | None]]
