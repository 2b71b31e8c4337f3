"""Stand in for `docker compose ... config` used by the tests.

Merges the `-f` files in order, rewrites relative bind mounts to absolute
paths under the working directory and prints the result like compose does.
Set FAKE_COMPOSE_FAIL to make the command fail with that message.
"""

import os
import sys
from typing import Any

import yaml


def merge(base: Any, override: Any) -> Any:
    if isinstance(base, dict) and isinstance(override, dict):
        result = dict(base)
        for key, value in override.items():
            result[key] = merge(result.get(key), value)
        return result
    return override


def absolute_volumes(doc: dict[str, Any]) -> None:
    for service in (doc.get("services") or {}).values():
        volumes = service.get("volumes") if isinstance(service, dict) else None
        for i, volume in enumerate(volumes or []):
            if isinstance(volume, str) and volume.startswith("./"):
                volumes[i] = os.path.join(os.getcwd(), volume[2:])


def main() -> None:
    if message := os.environ.get("FAKE_COMPOSE_FAIL"):
        print(message, file=sys.stderr)
        sys.exit(1)
    args = sys.argv[1:]
    if not args or args[-1] != "config":
        print(f"unsupported arguments {args}", file=sys.stderr)
        sys.exit(2)
    files = [args[i + 1] for i, arg in enumerate(args[:-1]) if arg == "-f"]
    doc: dict[str, Any] = {"name": os.environ.get("COMPOSE_PROJECT_NAME", "")}
    for path in files:
        with open(path, encoding="utf-8") as f:
            doc = merge(doc, yaml.safe_load(f) or {})
    absolute_volumes(doc)
    sys.stdout.write(yaml.safe_dump(doc, sort_keys=False))


if __name__ == "__main__":
    main()
