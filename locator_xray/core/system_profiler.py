"""
System Profiler for repair client selection.

Detects available API keys, installed provider SDKs and basic host resources
to recommend a repair client and to feed the ``doctor`` command.
"""

import importlib.util
import logging
import os
import platform
import sys
from dataclasses import dataclass
from typing import Any, Dict, Optional

import psutil

logger = logging.getLogger(__name__)


@dataclass
class SystemProfile:
    """Host and environment profile."""
    python_version: str
    os_name: str
    total_ram_gb: float
    available_ram_gb: float
    cpu_count: int
    has_openai_key: bool
    has_anthropic_key: bool
    has_openai_sdk: bool
    has_anthropic_sdk: bool

    @property
    def can_use_openai(self) -> bool:
        return self.has_openai_key and self.has_openai_sdk

    @property
    def can_use_anthropic(self) -> bool:
        return self.has_anthropic_key and self.has_anthropic_sdk

    @property
    def can_use_cloud(self) -> bool:
        return self.can_use_openai or self.can_use_anthropic

    def to_dict(self) -> Dict[str, Any]:
        return {
            "python_version": self.python_version,
            "os_name": self.os_name,
            "total_ram_gb": self.total_ram_gb,
            "available_ram_gb": self.available_ram_gb,
            "cpu_count": self.cpu_count,
            "has_openai_key": self.has_openai_key,
            "has_anthropic_key": self.has_anthropic_key,
            "has_openai_sdk": self.has_openai_sdk,
            "has_anthropic_sdk": self.has_anthropic_sdk,
        }


def _has_key(name: str) -> bool:
    return bool(os.environ.get(name, "").strip())


def _has_module(name: str) -> bool:
    return importlib.util.find_spec(name) is not None


class SystemProfiler:
    """Detects system capabilities."""

    @staticmethod
    def get_profile() -> SystemProfile:
        """Get the current system profile."""
        vm = psutil.virtual_memory()
        return SystemProfile(
            python_version=sys.version.split()[0],
            os_name=f"{platform.system()} {platform.release()}",
            total_ram_gb=round(vm.total / (1024 ** 3), 2),
            available_ram_gb=round(vm.available / (1024 ** 3), 2),
            cpu_count=psutil.cpu_count(logical=True) or 1,
            has_openai_key=_has_key("OPENAI_API_KEY"),
            has_anthropic_key=_has_key("ANTHROPIC_API_KEY"),
            has_openai_sdk=_has_module("openai"),
            has_anthropic_sdk=_has_module("anthropic"),
        )

    @staticmethod
    def recommend_client_type(profile: Optional[SystemProfile] = None) -> str:
        """
        Recommend the best repair client based on the profile.

        Returns:
            str: 'cloud' or 'heuristic'
        """
        if profile is None:
            profile = SystemProfiler.get_profile()
        if profile.can_use_cloud:
            return "cloud"
        if profile.has_openai_key or profile.has_anthropic_key:
            logger.warning(
                "[SystemProfiler] API key found but provider SDK missing. "
                "Install with: pip install locator-xray[cloud]"
            )
        return "heuristic"
