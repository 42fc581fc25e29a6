import re
from collections.abc import Callable

OriginPredicate = Callable[[str | None], bool]


def pattern_allow_list(pattern: str) -> OriginPredicate:
    compiled = re.compile(pattern)

    def is_allowed(origin: str | None) -> bool:
        if not origin:
            return False
        return compiled.fullmatch(origin) is not None

    return is_allowed
