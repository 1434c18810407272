"""Container startup shim for n8n on Cloud Run.

Cloud Run tells the container which port to listen on through ``PORT``,
while n8n reads ``N8N_PORT``. This module copies one into the other, prints
the database settings for troubleshooting and then replaces itself with the
n8n entrypoint, so no wrapper process stays between Cloud Run and n8n.

It is copied verbatim into the image and must only use the standard library.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable, Mapping, MutableMapping, Sequence
from typing import NoReturn

PLATFORM_PORT_VAR = "PORT"
APP_PORT_VAR = "N8N_PORT"
DEFAULT_ENTRYPOINT = "/docker-entrypoint.sh"
ENTRYPOINT_VAR = "N8N_ENTRYPOINT"

REPORTED_VARS = (
    "DB_TYPE",
    "DB_POSTGRESDB_HOST",
    "DB_POSTGRESDB_PORT",
    APP_PORT_VAR,
)


def bridge_port(environ: MutableMapping[str, str]) -> MutableMapping[str, str]:
    """Copy the platform-assigned port into n8n's port variable.

    ``N8N_PORT`` is overwritten only when ``PORT`` is set and non-empty;
    otherwise it keeps whatever value (or absence) it had.
    """
    port = environ.get(PLATFORM_PORT_VAR)
    if port:
        environ[APP_PORT_VAR] = port
    return environ


def diagnostic_lines(environ: Mapping[str, str]) -> list[str]:
    """Return the diagnostic lines describing the resolved settings."""
    lines = ["Database settings:"]
    lines.extend(f"{name}: {environ.get(name, '')}" for name in REPORTED_VARS)
    return lines


def emit_diagnostics(environ: Mapping[str, str]) -> None:
    """Print diagnostics; output problems never stop the startup."""
    try:
        for line in diagnostic_lines(environ):
            print(line, flush=True)
    except (OSError, ValueError):
        pass


def main(
    argv: Sequence[str] | None = None,
    environ: MutableMapping[str, str] | None = None,
    execve: Callable[[str, list[str], Mapping[str, str]], object] = os.execve,
) -> NoReturn:
    """Bridge the port, report settings and exec the n8n entrypoint.

    Args:
        argv: Arguments forwarded to the entrypoint (defaults to sys.argv[1:])
        environ: Process environment (defaults to a copy of os.environ)
        execve: Process replacement primitive
    """
    args = list(sys.argv[1:] if argv is None else argv)
    env = dict(os.environ) if environ is None else environ

    bridge_port(env)
    emit_diagnostics(env)

    entrypoint = env.get(ENTRYPOINT_VAR) or DEFAULT_ENTRYPOINT
    execve(entrypoint, [entrypoint, *args], env)
    # Unreachable unless execve was substituted
    raise SystemExit(0)


if __name__ == "__main__":
    main()
