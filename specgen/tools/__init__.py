from specgen.tools.atlassian import register_atlassian_tools
from specgen.tools.github import register_github_tools
from specgen.tools.registry import ToolRegistry, ToolSpec

__all__ = ["ToolRegistry", "ToolSpec", "register_atlassian_tools", "register_github_tools"]
