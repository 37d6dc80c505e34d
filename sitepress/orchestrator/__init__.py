"""
Generation orchestrator: pure state machine (states) and its interpreter (runner).
"""
from sitepress.orchestrator.runner import OrchestratorRunner, RunResult
from sitepress.orchestrator.states import RetryPolicy, State, StateName, initial_state, transition

__all__ = [
    "OrchestratorRunner",
    "RetryPolicy",
    "RunResult",
    "State",
    "StateName",
    "initial_state",
    "transition",
]
