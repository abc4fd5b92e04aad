"""
Apply SIZEGUARD_* environment variables to the tornado options.

Every defined option can be set, e.g. SIZEGUARD_STORAGE_ROOT=/srv/files or
SIZEGUARD_ARCHIVE_TOOL_TIMEOUT=30. Values are parsed according to the option's type.
"""
import environs
from tornado.options import options


env = environs.Env()

PARSERS = {
    bool: env.bool,
    int: env.int,
    float: env.float,
}


def apply_environment(prefix='SIZEGUARD_'):
    """Set every option that has an environment variable; return the names that were set."""
    applied = []
    with env.prefixed(prefix):
        for name, option in options._options.items():
            parse = PARSERS.get(option.type, env.str)
            value = parse(name.replace('-', '_').upper(), None)
            if value is None:
                continue
            setattr(options, option.name, value)
            applied.append(option.name)
    return applied
