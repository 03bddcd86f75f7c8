ANALYSIS_INTRO = (
    "Generate a comprehensive summary of commit patch files with code snippets, "
    "architecture diagrams, and educational takeaways."
)

ANALYSIS_STRUCTURE_TEMPLATE = """Provide a comprehensive analysis with EXACTLY this JSON structure:
{
  "codeChanges": [
    {
      "type": "Feature|Refactor|Logic|Chore|Cleanup|Config",
      "file": "path/to/file",
      "lines": "line_start-line_end",
      "summary": "One sentence summary of the core change",
      "codeSnippet": [
        "Each line MUST be prefixed with line number and colon",
        "Format: 'line_number: actual_code'",
        "Example: '42: def handle_click(event):'",
        "Include 5-10 lines of relevant code with context",
        "Always include the actual line numbers from the file",
        "ONLY include code snippets for Feature, Refactor, and Logic changes"
      ],
      "explanation": "Explain each change in simple, non-technical terms."
    }
  ],
  "architectureDiagram": {
    "diagram": "mermaid diagram code starting with graph TD. Label components with actual code names.",
    "explanation": "explanation of the architecture"
  },
  "conceptTakeaway": {
    "concept": "Select one core programming concept used in this change to explain.",
    "file": "path/to/file",
    "lines": "line_start-line_end",
    "codeSnippet": [
      "Each line MUST be prefixed with line number and colon",
      "Format: 'line_number: actual_code'",
      "Example: '42: cache = {}'"
    ],
    "explanation": "Keep the explanation beginner-friendly."
  }
}"""

ANALYSIS_EXAMPLE_TEMPLATE = """EXAMPLE:

{
  "codeChanges": [
    {
      "type": "Feature",
      "file": "src/editor/block.py",
      "lines": "68-75",
      "summary": "Added @ mention rendering to show user names in the editor",
      "codeSnippet": [
        "68: def render_content(block):",
        "69:     if block.state == \\"completed\\":",
        "70:         return f\\"@{block.selected_item.title}\\"",
        "71:     if block.state == \\"searching\\":",
        "72:         return block.search_query or \\"select item\\"",
        "73:     return block.text",
        "74: ",
        "75: BLOCK_RENDERERS[\\"mention\\"] = render_content"
      ],
      "explanation": "We added a new rule to show names when people type @. The program checks if the name is finished or still being searched."
    }
  ],
  "architectureDiagram": {
    "diagram": "graph TD\\n  EditorState --> TextBlock\\n  EditorState --> MentionBlock\\n  TextBlock --> content\\n  MentionBlock --> search_query\\n  MentionBlock --> selections",
    "explanation": "The editor stores words in little blocks. Some blocks have regular text. Some blocks show names with @."
  },
  "conceptTakeaway": {
    "concept": "Dispatch tables",
    "file": "src/editor/block.py",
    "lines": "75-75",
    "codeSnippet": [
      "75: BLOCK_RENDERERS[\\"mention\\"] = render_content"
    ],
    "explanation": "A dispatch table is a dictionary that maps a name to the function that handles it. Instead of a long chain of if statements, the editor looks up the block type and calls whatever function is stored there."
  }
}"""


def build_analysis_prompt(filtered_diff: str) -> str:
    """Assemble the single free-text prompt sent to the model."""
    return (
        f"{ANALYSIS_INTRO}\n\n"
        f"{ANALYSIS_STRUCTURE_TEMPLATE}\n\n"
        f"{ANALYSIS_EXAMPLE_TEMPLATE}\n\n"
        f"Git Diff to analyze:\n{filtered_diff}"
    )
