"""
Section prompts for the specification document.

Each section kind has a system prompt, a heading, and a user prompt built
from the repository snapshot and the Jira issues. Prompt building is pure:
the same context always yields the same text.
"""

from typing import Dict, Iterator, List

from specgen.models import FileNode, GenerationContext, JiraIssue, SectionKind

# =============================================================================
# System prompts and headings
# =============================================================================

SYSTEM_PROMPTS: Dict[SectionKind, str] = {
    SectionKind.OVERVIEW: "You are a technical documentation expert. Generate clear, concise, and professional documentation.",
    SectionKind.REQUIREMENTS: "You are a requirements analyst. Extract and organize requirements from the provided information.",
    SectionKind.ARCHITECTURE: "You are a software architect. Analyze the codebase and describe the system architecture.",
    SectionKind.DATAFLOW: "You are a system analyst. Describe the data flow and interactions within the system.",
    SectionKind.TECHNICAL_DETAILS: "You are a senior developer. Provide technical implementation details and best practices.",
}

SECTION_TITLES: Dict[SectionKind, str] = {
    SectionKind.OVERVIEW: "Project Overview",
    SectionKind.REQUIREMENTS: "Requirements",
    SectionKind.ARCHITECTURE: "System Architecture",
    SectionKind.DATAFLOW: "Data Flow",
    SectionKind.TECHNICAL_DETAILS: "Technical Details",
}

SAMPLE_FILE_LIMIT = 3
SAMPLE_CHARS = 200
NONE = "None"


# =============================================================================
# Helpers
# =============================================================================

def format_file_structure(nodes: List[FileNode], indent: str = "") -> str:
    """Depth-first tree listing, two spaces per level."""
    result = ""
    for node in nodes:
        if node.type == "directory":
            result += f"{indent}📁 {node.path}/\n"
            if node.children:
                result += format_file_structure(node.children, indent + "  ")
        else:
            result += f"{indent}📄 {node.path}\n"
    return result


def iter_files_with_content(nodes: List[FileNode]) -> Iterator[FileNode]:
    for node in nodes:
        if node.type == "file" and node.content:
            yield node
        elif node.children:
            yield from iter_files_with_content(node.children)


def _format_issue(issue: JiraIssue, *lines: str) -> str:
    body = "\n".join(f"  {line}" for line in lines)
    return f"\n- {issue.key}: {issue.summary}\n{body}\n"


# =============================================================================
# Section prompts
# =============================================================================

def _overview(ctx: GenerationContext) -> str:
    github = ctx.github
    issues = "\n".join(
        _format_issue(
            issue,
            f"Type: {issue.issue_type}",
            f"Status: {issue.status}",
            f"Description: {issue.description or NONE}",
        )
        for issue in ctx.jira_issues
    )
    return f"""
Based on the following information, write a project overview in {ctx.language}.

GitHub repository:
- Repository: {github.owner}/{github.name}
- Description: {github.description or NONE}
- README: {github.readme or NONE}

Jira issues:
{issues}

Include the following:
1. Purpose and background of the project
2. Main features and characteristics
3. Target users
4. Current state of the project
"""


def _requirements(ctx: GenerationContext) -> str:
    issues = "\n".join(
        _format_issue(
            issue,
            f"Type: {issue.issue_type}",
            f"Priority: {issue.priority or 'Not set'}",
            f"Description: {issue.description or NONE}",
            f"Labels: {', '.join(issue.labels) or NONE}",
        )
        for issue in ctx.jira_issues
    )
    return f"""
From the following Jira issues, organize the system requirements in {ctx.language}.

Jira issues:
{issues}

Organize them as follows:
1. Functional requirements
   - Required features
   - Recommended features
2. Non-functional requirements
   - Performance
   - Security
   - Availability
3. Constraints
"""


def _architecture(ctx: GenerationContext) -> str:
    return f"""
Analyze the following GitHub repository structure and describe the system architecture in {ctx.language}.

Repository structure:
{format_file_structure(ctx.github.structure)}

Cover the following aspects:
1. Application structure (layers, modules)
2. Main technology stack
3. Design patterns
4. Integration with external systems
5. Data storage
"""


def _dataflow(ctx: GenerationContext) -> str:
    features = "\n".join(
        f"\n- {issue.summary}\n"
        for issue in ctx.jira_issues
        if issue.issue_type in ("Story", "Task")
    )
    return f"""
Based on the following information, describe the data flow of the system in {ctx.language}.

GitHub repository structure:
{format_file_structure(ctx.github.structure)}

Jira issues (features):
{features}

Include the following:
1. Main data flows
2. User interaction flows
3. Data exchange between systems
4. Data processing sequences
5. Error handling flows
"""


def _technical_details(ctx: GenerationContext) -> str:
    samples = []
    for index, node in enumerate(iter_files_with_content(ctx.github.structure)):
        if index >= SAMPLE_FILE_LIMIT:
            break
        samples.append(f"\nFile: {node.path}\n```\n{node.content[:SAMPLE_CHARS]}...\n```\n")

    code_samples = "".join(samples) if samples else NONE
    return f"""
Based on the following information, describe the technical implementation details in {ctx.language}.

Code samples:
{code_samples}

Explain the following:
1. Implementation details of the main components
2. Important algorithms and logic
3. Security implementation
4. Performance optimizations
5. Testing strategy
6. Deployment configuration
"""


_BUILDERS = {
    SectionKind.OVERVIEW: _overview,
    SectionKind.REQUIREMENTS: _requirements,
    SectionKind.ARCHITECTURE: _architecture,
    SectionKind.DATAFLOW: _dataflow,
    SectionKind.TECHNICAL_DETAILS: _technical_details,
}


def render_prompt(kind: SectionKind, context: GenerationContext) -> str:
    """Build the user prompt for one section kind."""
    try:
        builder = _BUILDERS[SectionKind(kind)]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown prompt type: {kind}") from None
    return builder(context)
