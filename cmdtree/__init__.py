from cmdtree.cmdtree_runtime import ScriptRunner, ExecutionResult, NodeRegistry, resolve_invocation
from cmdtree.cmdtree_interpreter import Environment, Evaluator

__all__ = [
    "ScriptRunner",
    "ExecutionResult",
    "NodeRegistry",
    "resolve_invocation",
    "Environment",
    "Evaluator",
]
