"""Run orchestration"""
from .run_controller import RunController

__all__ = ["RunController"]
