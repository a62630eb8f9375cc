import os
from collections.abc import Iterable


def _parse_env_file(env_path: str) -> dict[str, str]:
    """Parse a simple .env file into a dict without modifying os.environ.

    Supports basic KEY=VALUE pairs, ignoring comments and blank lines.
    Surrounding single/double quotes are stripped if present.
    """
    values: dict[str, str] = {}
    try:
        with open(env_path) as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if "=" not in line:
                    continue
                key, val = line.split("=", 1)
                key = key.strip()
                val = val.strip().strip('"').strip("'")
                if key:
                    values[key] = val
    except FileNotFoundError:
        # Silently ignore missing file to make the helper easy to use
        pass
    return values


def _split(value: str, split_commas: bool) -> list[str]:
    if split_commas and "," in value:
        return [t.strip() for t in value.split(",") if t.strip()]
    return [value.strip()] if value.strip() else []


def load_tokens_from_env(
    names: Iterable[str] | None = None,
    prefix: str | None = None,
    env_path: str | None = None,
    split_commas: bool = True,
) -> list[str]:
    """Collect tokens from environment variables.

    - If 'names' is provided, look up each explicit env var name.
    - If 'prefix' is provided, take every env var whose name starts with the prefix.
    - If both are provided, results are combined (names first).
    - If 'env_path' is provided, variables from the .env file augment lookups
        (without mutating the process environment). Values in the actual
        environment take precedence over the file.
    - Comma-separated values yield one token per item unless split_commas=False.
    """
    file_env = _parse_env_file(env_path) if env_path else {}
    env_map: dict[str, str] = {**file_env, **os.environ}

    tokens: list[str] = []
    if names:
        for var in names:
            value = env_map.get(var)
            if value:
                tokens.extend(_split(value, split_commas))

    if prefix:
        for var in sorted(env_map):
            if var.startswith(prefix) and env_map[var]:
                tokens.extend(_split(env_map[var], split_commas))

    return tokens
