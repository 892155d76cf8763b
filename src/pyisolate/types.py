"""Core type definitions"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple


class Installer(Enum):
    PIP = "pip"
    UV = "uv"


@dataclass(frozen=True)
class Snapshot:
    """Process-global state captured when a sandbox is enabled"""
    variables: Dict[str, Optional[str]] = field(default_factory=dict)
    path: Tuple[str, ...] = ()
