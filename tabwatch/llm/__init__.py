"""Code-generation collaborators for action/trigger artifacts."""

from tabwatch.llm.base import CodeGenerator, NullCodeGenerator

__all__ = ["CodeGenerator", "NullCodeGenerator"]
