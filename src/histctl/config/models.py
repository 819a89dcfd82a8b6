"""Pydantic configuration models with code-baked defaults.

Sparse TOML contract: defaults baked here, histctl.toml only contains
overrides. A fresh workspace needs nothing at all.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from histctl.engine.history import DEFAULT_CAPACITY

ReceiverKind = Literal["account", "text"]


class WorkspaceConfig(BaseModel):
    """[workspace] section."""

    model_config = {"frozen": True}

    name: str = "default"
    receiver: ReceiverKind = "account"


class HistoryConfig(BaseModel):
    """[history] section."""

    model_config = {"frozen": True}

    capacity: int = Field(default=DEFAULT_CAPACITY, ge=1)


class ChainConfig(BaseModel):
    """[chain] section.

    ``offload`` runs the receiver handler on a worker pool so that
    ``handler_timeout`` and cancellation apply to it.
    """

    model_config = {"frozen": True}

    handler_timeout: float | None = Field(default=5.0, gt=0)
    offload: bool = False
    max_workers: int = Field(default=2, ge=1)
    read_only: bool = False


class PluginsConfig(BaseModel):
    """[plugins] section."""

    model_config = {"frozen": True}

    enabled: bool = True
    local_dir: Path | None = None
