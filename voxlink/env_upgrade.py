"""Carry an existing .env file forward onto the current .env.template.

The template is the source of truth for layout and comments. Values already
present in .env replace the template defaults, commented-out template keys are
uncommented when .env sets them, and keys the template no longer knows about
are appended at the end so nothing is lost.
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values

LOGGER = logging.getLogger(__name__)

DEFAULT_TEMPLATE_PATH = Path(".env.template")
DEFAULT_ENV_PATH = Path(".env")

UNKNOWN_KEYS_HEADER = "## The following keys are from your existing .env but not present in .env.template"

# KEY=VALUE
_ASSIGNMENT_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)\s*=(.*)$")

# # KEY=VALUE (a single "#" followed by exactly one token before "=")
_COMMENTED_ASSIGNMENT_RE = re.compile(r"^#\s+([A-Za-z_][A-Za-z0-9_]*)=(.*)$")


@dataclass
class EnvUpgradeResult:
    env_path: Path
    created: bool = False
    migrated_keys: list[str] = field(default_factory=list)
    unknown_keys: list[str] = field(default_factory=list)


def _format_line(key: str, value: str | None) -> str:
    return f"{key}={value if value is not None else ''}"


def merge_env_lines(
    template_lines: list[str],
    existing: dict[str, str | None],
    *,
    logger: logging.Logger | None = None,
) -> tuple[list[str], list[str], list[str]]:
    """Return (lines, migrated keys, unknown keys) for the upgraded file."""
    log = logger or LOGGER
    migrated: list[str] = []
    result: list[str] = []

    for line in template_lines:
        match = _ASSIGNMENT_RE.match(line)
        if match is None:
            match = _COMMENTED_ASSIGNMENT_RE.match(line.strip())
        if match is not None:
            key = match.group(1)
            if key in existing:
                log.info("Migrating env key: %s", key)
                migrated.append(key)
                result.append(_format_line(key, existing[key]))
                continue
        result.append(line)

    unknown = [key for key in existing if key not in migrated]
    if unknown:
        result.append("")
        result.append("")
        result.append(UNKNOWN_KEYS_HEADER)
        for key in unknown:
            log.info("Appending unknown env key: %s", key)
            result.append(_format_line(key, existing[key]))

    return result, migrated, unknown


def upgrade_env(
    template_path: Path = DEFAULT_TEMPLATE_PATH,
    env_path: Path = DEFAULT_ENV_PATH,
    *,
    logger: logging.Logger | None = None,
) -> EnvUpgradeResult:
    log = logger or LOGGER
    template_path = Path(template_path)
    env_path = Path(env_path)
    result = EnvUpgradeResult(env_path=env_path)

    if not env_path.exists():
        if not template_path.exists():
            log.error(
                ".env.template file does not exist at %s, cannot create .env file.",
                template_path,
            )
            return result
        shutil.copyfile(template_path, env_path)
        result.created = True
        log.info(".env file created at %s from template.", env_path)
        return result

    if not template_path.exists():
        log.error(".env.template file does not exist at %s, nothing to upgrade.", template_path)
        return result

    existing = dotenv_values(env_path)
    template_lines = template_path.read_text(encoding="utf-8").split("\n")
    lines, result.migrated_keys, result.unknown_keys = merge_env_lines(template_lines, existing, logger=log)

    backup_path = Path(str(env_path) + ".backup")
    try:
        shutil.copy2(env_path, backup_path)
        try:
            backup_path.chmod(0o600)
        except OSError:
            pass
    except OSError as exc:
        log.warning("Failed to create .env backup: %s", exc)

    env_path.write_text("\n".join(lines), encoding="utf-8")
    log.info(".env file at %s has been upgraded.", env_path)
    return result
