from specgen.pipeline.orchestrator import AnalyzeOrchestrator, AnalyzeStage

__all__ = ["AnalyzeOrchestrator", "AnalyzeStage"]
