"""Resolve the image under test."""

from __future__ import annotations

import os
from typing import Mapping, Optional

# Environment variable that overrides the image a test would otherwise use
IMAGE_ENV_VAR = "TEST_IMAGE"


def get_test_image(
    default: str,
    environ: Optional[Mapping[str, str]] = None,
    env_var: str = IMAGE_ENV_VAR,
) -> str:
    """Return the image override from the environment, or the default.

    An empty override counts as unset. The reference is not validated; a bad
    one surfaces when a container is started from it.

    Example:
        image = get_test_image("ghcr.io/craquehouse/actions-runner:rolling")
    """
    if environ is None:
        environ = os.environ
    override = environ.get(env_var)
    if override:
        return override
    return default
