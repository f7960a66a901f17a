"""Stage handlers, one per pipeline stage."""

from docflow.pipeline.stages.analyze import AnalyzeStage
from docflow.pipeline.stages.base import StageHandler, StageOutputs
from docflow.pipeline.stages.compare import CompareStage
from docflow.pipeline.stages.extract import ExtractStage
from docflow.pipeline.stages.insights import InsightsStage
from docflow.pipeline.stages.store import StoreStage
from docflow.pipeline.stages.validate import ValidateStage

__all__ = ["AnalyzeStage", "CompareStage", "ExtractStage", "InsightsStage", "StageHandler", "StageOutputs", "StoreStage", "ValidateStage"]
