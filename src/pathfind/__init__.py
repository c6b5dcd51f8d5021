"""Locate sequencing lane data on disk from tracking database searches."""

from .config import AppConfig, load_config
from .pipeline import PathFindRequest, PipelineDriver, run_search

__all__ = ["AppConfig", "PathFindRequest", "PipelineDriver", "load_config", "run_search"]
