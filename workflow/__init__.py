"""Workflow package: controller, store, merge rules, and step processors."""

from workflow.callbacks import StateSink, LoggingSink, RichSnapshotSink
from workflow.concept import ConceptSeed, parse_concept
from workflow.controller import WorkflowController
from workflow.enrichment import ImageEnrichment
from workflow.merger import StepMerger, merge_by_key
from workflow.spatial import SpatialEnhancer
from workflow.store import WorkflowStore
from workflow.summary import build_final_review, compute_progress
from workflow.validation import ImageRequirementValidator, ImageValidationResult

__all__ = [
    "WorkflowController",
    "WorkflowStore",
    "StepMerger",
    "merge_by_key",
    "SpatialEnhancer",
    "ImageEnrichment",
    "ImageRequirementValidator",
    "ImageValidationResult",
    "ConceptSeed",
    "parse_concept",
    "build_final_review",
    "compute_progress",
    "StateSink",
    "LoggingSink",
    "RichSnapshotSink",
]
