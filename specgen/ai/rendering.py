"""
Markdown to Confluence storage format.

Only the subset the generated sections use is converted. Rules run in a
fixed order; code fragments are set aside first so later rules never touch
their contents:

1. fenced code blocks -> ``code`` macro (language defaults to ``text``)
2. inline code        -> ``<code>``
3. headers            -> ``<h3>``, ``<h2>``, ``<h1>``
4. bold, then italic  -> ``<strong>``, ``<em>``
5. line breaks        -> ``<br/>`` before each newline not already preceded by one
6. code fragments restored
"""

import html
import re
from typing import List

from specgen.models import Document

FENCE_RE = re.compile(r"```(\w+)?\n(.*?)```", re.DOTALL)
INLINE_CODE_RE = re.compile(r"`(.+?)`")
H3_RE = re.compile(r"^### (.*)$", re.MULTILINE)
H2_RE = re.compile(r"^## (.*)$", re.MULTILINE)
H1_RE = re.compile(r"^# (.*)$", re.MULTILINE)
BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
ITALIC_RE = re.compile(r"\*(.+?)\*")
LINE_BREAK_RE = re.compile(r"(?<!<br/>)\n")
PLACEHOLDER_RE = re.compile("\x00(\\d+)\x00")


def _cdata(text: str) -> str:
    # "]]>" cannot appear inside a CDATA section
    return "<![CDATA[" + text.replace("]]>", "]]]]><![CDATA[>") + "]]>"


def code_macro(code: str, language: str = "text") -> str:
    return (
        '<ac:structured-macro ac:name="code">'
        f'<ac:parameter ac:name="language">{language}</ac:parameter>'
        f"<ac:plain-text-body>{_cdata(code.strip())}</ac:plain-text-body>"
        "</ac:structured-macro>"
    )


def markdown_to_storage(markdown: str) -> str:
    """Convert generated markdown to a storage-format fragment."""
    protected: List[str] = []

    def protect(fragment: str) -> str:
        protected.append(fragment)
        return f"\x00{len(protected) - 1}\x00"

    text = FENCE_RE.sub(lambda m: protect(code_macro(m.group(2), m.group(1) or "text")), markdown)
    text = INLINE_CODE_RE.sub(lambda m: protect(f"<code>{html.escape(m.group(1), quote=False)}</code>"), text)

    text = H3_RE.sub(r"<h3>\1</h3>", text)
    text = H2_RE.sub(r"<h2>\1</h2>", text)
    text = H1_RE.sub(r"<h1>\1</h1>", text)
    text = BOLD_RE.sub(r"<strong>\1</strong>", text)
    text = ITALIC_RE.sub(r"<em>\1</em>", text)
    text = LINE_BREAK_RE.sub("<br/>\n", text)

    return PLACEHOLDER_RE.sub(lambda m: protected[int(m.group(1))], text)


def render_document(document: Document) -> str:
    """Full page body: title, generation info panel, one h2 per section."""
    meta = document.metadata
    parts = [
        f"<h1>{html.escape(document.title)}</h1>\n\n",
        '<ac:structured-macro ac:name="info">\n',
        "<ac:rich-text-body>\n",
        f"<p>Generated at: {meta.generated_at.isoformat()}</p>\n",
        f"<p>GitHub repository: {html.escape(meta.source_repo_id)}</p>\n",
        f"<p>Jira project: {html.escape(meta.source_project_id)}</p>\n",
        f"<p>Model: {html.escape(meta.model_provider)} / {html.escape(meta.model_id)}</p>\n",
        "</ac:rich-text-body>\n",
        "</ac:structured-macro>\n\n",
    ]
    for section in document.sections:
        parts.append(f"<h2>{html.escape(section.title)}</h2>\n")
        parts.append(markdown_to_storage(section.body_text) + "\n\n")
    return "".join(parts)
