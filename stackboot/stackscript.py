"""Startup ("stack") scripts: rendering, parameters and upsert by label."""

from __future__ import annotations

import json
from datetime import datetime

from loguru import logger

from stackboot.protocols import ResourceClient

__all__ = [
    "DEFAULT_SCRIPT_TEMPLATE",
    "render_startup_script",
    "script_parameters",
    "find_startup_script",
    "upsert_startup_script",
]

DEFAULT_SCRIPT_TEMPLATE = """#! /bin/bash
# {timestamp}
apt-get update
"""


def render_startup_script(template: str, *, cluster: str, now: datetime) -> str:
    """Fill ``{timestamp}`` and ``{cluster}`` in a script template.

    The timestamp makes every render differ, so an upsert always pushes a
    new revision. Shell braces must be doubled (``${{HOME}}``).

    Raises:
        ValueError: If the template has any other placeholder.
    """
    try:
        return template.format(timestamp=now.isoformat(sep=" "), cluster=cluster)
    except (KeyError, IndexError) as e:
        raise ValueError(
            f"script template has an unknown placeholder {e}; "
            "only {timestamp} and {cluster} are filled, double literal braces"
        ) from e


def script_parameters(cluster: str, instance: str, script_id: int) -> str:
    """JSON responses to the script's user-defined fields, passed at disk creation."""
    return json.dumps(
        {
            "cluster": cluster,
            "instance": instance,
            "stack_script_id": str(script_id),
        },
        indent=2,
    )


async def find_startup_script(client: ResourceClient, label: str) -> int | None:
    """Return the ID of the script labelled ``label``, or None."""
    for script in await client.list_startup_scripts():
        if script.label == label:
            return script.id
    return None


async def upsert_startup_script(
    client: ResourceClient,
    *,
    label: str,
    image_id: int,
    body: str,
    description: str,
) -> int:
    """Update the script labelled ``label`` in place, or create it.

    Labels are unique per account, so repeated calls never duplicate it.

    Returns:
        The script ID.
    """
    log = logger.bind(component="stackscript", label=label)

    script_id = await find_startup_script(client, label)
    if script_id is not None:
        script_id = await client.update_startup_script(script_id, body)
        log.info("Startup script {id} updated", id=script_id)
        return script_id

    script_id = await client.create_startup_script(
        label, image_id, body, {"Description": description}
    )
    log.info("Startup script {id} created", id=script_id)
    return script_id
