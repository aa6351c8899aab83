"""Engine domain: provider access, admission control and prompt assembly."""

from draftmind.engine.admission import AdmissionController
from draftmind.engine.admission import AdmissionUsage
from draftmind.engine.admission import AdmittedCompletionService
from draftmind.engine.admission import WindowEntry
from draftmind.engine.completion import AnalysisUnavailableError
from draftmind.engine.completion import Completion
from draftmind.engine.completion import CompletionError
from draftmind.engine.completion import TextCompletionService
from draftmind.engine.context_budget import ContextBudgetAssembler
from draftmind.engine.context_budget import ContextBudgetInput
from draftmind.engine.context_budget import ContextBudgetMetadata
from draftmind.engine.context_budget import ContextBudgetResult
from draftmind.engine.context_budget import LayerTokens
from draftmind.engine.llm_adapters import build_completion_service
from draftmind.engine.llm_adapters import NoopCompletionService
from draftmind.engine.llm_adapters import OpenAICompatibleCompletionService
from draftmind.engine.parsing import parse_json_array
from draftmind.engine.parsing import parse_json_object
from draftmind.engine.parsing import ParseError
from draftmind.engine.parsing import ParseOk

__all__ = [
    "AdmissionController",
    "AdmissionUsage",
    "AdmittedCompletionService",
    "AnalysisUnavailableError",
    "Completion",
    "CompletionError",
    "ContextBudgetAssembler",
    "ContextBudgetInput",
    "ContextBudgetMetadata",
    "ContextBudgetResult",
    "LayerTokens",
    "NoopCompletionService",
    "OpenAICompatibleCompletionService",
    "ParseError",
    "ParseOk",
    "TextCompletionService",
    "WindowEntry",
    "build_completion_service",
    "parse_json_array",
    "parse_json_object",
]
