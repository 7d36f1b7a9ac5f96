"""llm-caller - call LLM HTTP APIs from declarative JSON templates."""

__version__ = "0.3.0"
